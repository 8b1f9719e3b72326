from pydantic import BaseModel, ConfigDict, Field, StrictInt
from datetime import date, datetime
from typing import Dict, List, Optional

from leave_ledger.models.leave_policy import LeaveType


class LeaveRequestCreate(BaseModel):
    employee_id: str = Field(..., min_length=1)
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: str = Field(..., min_length=1, max_length=2000)
    approver: Optional[str] = None


class LeaveRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: str
    employee_id: str
    employee_name: Optional[str] = None
    leave_type: str
    start_date: date
    end_date: date
    days: int
    reason: str
    status: str
    approver: Optional[str] = None
    applied_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None


class LeaveRequestListResponse(BaseModel):
    """Paginated list of leave requests."""
    items: List[LeaveRequestResponse]
    total: int
    page: int
    page_size: int


class LeaveTransitionRequest(BaseModel):
    reason: Optional[str] = None


class BalanceEntry(BaseModel):
    remaining: int
    limit: int


class EmployeeBalanceResponse(BaseModel):
    employee_id: str
    balances: Dict[LeaveType, BalanceEntry]


class TenantBalancesResponse(BaseModel):
    tenant_id: str
    employees: Dict[str, Dict[LeaveType, BalanceEntry]]


class LeavePolicyUpdate(BaseModel):
    quotas: Dict[str, StrictInt]


class LeavePolicyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tenant_id: str
    quotas: Dict[LeaveType, int]
    last_updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None


class PolicyUpdateResult(LeavePolicyResponse):
    employees_recomputed: int


class LeaveEligibilityResponse(BaseModel):
    eligible: bool
    leave_type: LeaveType
    days_requested: int
    remaining_balance: int
