from sqlalchemy import Column, Integer, String, DateTime, CheckConstraint
from sqlalchemy.sql import func
from leave_ledger.database import Base
import enum


class LeaveType(str, enum.Enum):
    ANNUAL = "annual"
    SICK = "sick"
    PERSONAL = "personal"


class LeavePolicy(Base):
    """Per-tenant annual quota for each leave type. Never deleted."""
    __tablename__ = "leave_policies"
    __table_args__ = (
        CheckConstraint("annual_quota >= 0", name="ck_leave_policies_annual_quota"),
        CheckConstraint("sick_quota >= 0", name="ck_leave_policies_sick_quota"),
        CheckConstraint("personal_quota >= 0", name="ck_leave_policies_personal_quota"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String, unique=True, nullable=False, index=True)
    annual_quota = Column(Integer, nullable=False, default=6)
    sick_quota = Column(Integer, nullable=False, default=6)
    personal_quota = Column(Integer, nullable=False, default=6)
    last_updated_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_by = Column(String, default="System")

    def quota_for(self, leave_type: LeaveType) -> int:
        return getattr(self, f"{LeaveType(leave_type).value}_quota")

    def set_quota(self, leave_type: LeaveType, days: int) -> None:
        setattr(self, f"{LeaveType(leave_type).value}_quota", days)

    @property
    def quotas(self):
        return {t: self.quota_for(t) for t in LeaveType}

    def __repr__(self):
        return f"<LeavePolicy {self.tenant_id} {self.annual_quota}/{self.sick_quota}/{self.personal_quota}>"
