from sqlalchemy import Column, Integer, String, DateTime, CheckConstraint, UniqueConstraint
from sqlalchemy.sql import func
from leave_ledger.database import Base


class LeaveBalance(Base):
    """
    Cached remaining days per (tenant, employee, leave type).
    Always reconcilable with max(0, quota - approved usage); written by LedgerService only.
    """
    __tablename__ = "leave_balances"
    __table_args__ = (
        UniqueConstraint("tenant_id", "employee_id", "leave_type", name="uq_leave_balances_key"),
        CheckConstraint("remaining_days >= 0", name="ck_leave_balances_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String, nullable=False, index=True)
    employee_id = Column(String, nullable=False, index=True)
    leave_type = Column(String, nullable=False)  # LeaveType value
    remaining_days = Column(Integer, nullable=False, default=0)
    recomputed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now())
    version = Column(Integer, nullable=False, default=1)

    # Optimistic concurrency: UPDATE ... WHERE version = :old, StaleDataError on a lost race
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<LeaveBalance {self.employee_id}/{self.leave_type}={self.remaining_days}>"
