"""
Employee directory read model.
Owned by the directory service; the leave core only reads it.
"""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from leave_ledger.database import Base


class Employee(Base):
    __tablename__ = "employees"

    # Employee codes are unique per tenant only
    tenant_id = Column(String, primary_key=True, index=True)
    id = Column(String, primary_key=True, index=True)  # e.g. "EMP001"
    full_name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    department = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Employee {self.id} ({self.tenant_id})>"
