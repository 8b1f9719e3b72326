"""
Employee directory collaborator.

The leave core only asks whether an employee exists and how to reach them.
SqlEmployeeDirectory reads the `employees` table; any object with the same
three methods can be injected instead.
"""
from dataclasses import dataclass
from typing import List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from leave_ledger.models.employee import Employee


@dataclass(frozen=True)
class EmployeeInfo:
    employee_id: str
    name: str
    email: str


class EmployeeDirectory(Protocol):
    def exists(self, tenant_id: str, employee_id: str) -> bool: ...

    def info(self, tenant_id: str, employee_id: str) -> Optional[EmployeeInfo]: ...

    def employee_ids(self, tenant_id: str) -> List[str]: ...


class SqlEmployeeDirectory:
    def __init__(self, db: Session):
        self.db = db

    def _get(self, tenant_id: str, employee_id: str) -> Optional[Employee]:
        return self.db.execute(
            select(Employee).where(
                Employee.tenant_id == tenant_id,
                Employee.id == employee_id,
                Employee.is_active.is_(True),
            )
        ).scalar_one_or_none()

    def exists(self, tenant_id: str, employee_id: str) -> bool:
        return self._get(tenant_id, employee_id) is not None

    def info(self, tenant_id: str, employee_id: str) -> Optional[EmployeeInfo]:
        employee = self._get(tenant_id, employee_id)
        if employee is None:
            return None
        return EmployeeInfo(employee_id=employee.id, name=employee.full_name, email=employee.email)

    def employee_ids(self, tenant_id: str) -> List[str]:
        return list(
            self.db.execute(
                select(Employee.id).where(Employee.tenant_id == tenant_id).order_by(Employee.id)
            ).scalars()
        )
