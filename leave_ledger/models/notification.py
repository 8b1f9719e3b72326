from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from sqlalchemy.sql import func
from leave_ledger.database import Base

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String, nullable=False, index=True)
    recipient = Column(String, nullable=False, index=True)  # email or employee id
    event = Column(String(50), nullable=False)  # applied, approved, rejected, cancelled
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    leave_request_id = Column(Integer, nullable=True, index=True)
    is_read = Column(Boolean, default=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
