from typing import Dict

from sqlalchemy import func, select

from leave_ledger.models.leave_policy import LeaveType
from leave_ledger.models.leave_request import LeaveRequest, LeaveStatus
from leave_ledger.services.base import BaseService


class UsageAggregator(BaseService):
    """Days consumed by currently-approved requests. Read-only."""

    def usage_for(self, tenant_id: str, employee_id: str) -> Dict[LeaveType, int]:
        rows = self.db.execute(
            select(LeaveRequest.leave_type, func.coalesce(func.sum(LeaveRequest.days), 0))
            .where(
                LeaveRequest.tenant_id == tenant_id,
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status == LeaveStatus.APPROVED.value,
            )
            .group_by(LeaveRequest.leave_type)
        ).all()

        usage = {t: 0 for t in LeaveType}
        for leave_type, days in rows:
            usage[LeaveType(leave_type)] = int(days)
        return usage

    def usage_of(self, tenant_id: str, employee_id: str, leave_type: LeaveType) -> int:
        total = self.db.execute(
            select(func.coalesce(func.sum(LeaveRequest.days), 0)).where(
                LeaveRequest.tenant_id == tenant_id,
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.leave_type == LeaveType(leave_type).value,
                LeaveRequest.status == LeaveStatus.APPROVED.value,
            )
        ).scalar_one()
        return int(total)
