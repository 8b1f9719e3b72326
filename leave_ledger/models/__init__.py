# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import employee, leave_policy, leave_balance, leave_request, notification

# Explicit class exports for cleaner imports
from .employee import Employee
from .leave_policy import LeavePolicy, LeaveType
from .leave_balance import LeaveBalance
from .leave_request import LeaveRequest, LeaveStatus
from .notification import Notification

__all__ = [
    "Employee",
    "LeavePolicy",
    "LeaveType",
    "LeaveBalance",
    "LeaveRequest",
    "LeaveStatus",
    "Notification",
]
