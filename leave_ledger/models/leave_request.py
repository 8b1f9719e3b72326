from sqlalchemy import Column, Integer, String, Date, DateTime, Text, Index, CheckConstraint
from sqlalchemy.sql import func
from leave_ledger.database import Base
import enum

class LeaveStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        Index("ix_leave_requests_usage", "tenant_id", "employee_id", "status"),
        CheckConstraint("end_date >= start_date", name="ck_leave_requests_dates"),
        CheckConstraint("days > 0", name="ck_leave_requests_days"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String, nullable=False, index=True)
    employee_id = Column(String, nullable=False, index=True)
    # Snapshot of directory info at application time
    employee_name = Column(String, nullable=True)
    employee_email = Column(String, nullable=True)

    leave_type = Column(String, nullable=False, index=True)  # LeaveType value
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    days = Column(Integer, nullable=False)  # end - start + 1, frozen at creation
    reason = Column(Text, nullable=False)
    status = Column(String, nullable=False, default=LeaveStatus.PENDING.value, index=True)
    approver = Column(String, nullable=True)

    applied_at = Column(DateTime(timezone=True), server_default=func.now())
    approved_at = Column(DateTime(timezone=True), nullable=True)
    approved_by = Column(String, nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(String, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<LeaveRequest {self.id} {self.employee_id} {self.leave_type} {self.days}d {self.status}>"
