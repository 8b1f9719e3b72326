import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status

from leave_ledger.core.exceptions import NotFoundError
from leave_ledger.core.limiter import limiter, write_limit
from leave_ledger.database import commit_or_rollback
from leave_ledger.routers.auth_deps import get_current_actor, get_tenant_id, require_policy_admin
from leave_ledger.dependencies import get_directory, get_ledger, get_policy_store, get_workflow
from leave_ledger.models.leave_policy import LeaveType
from leave_ledger.schemas.leave import (
    BalanceEntry,
    EmployeeBalanceResponse,
    LeaveEligibilityResponse,
    LeavePolicyResponse,
    LeavePolicyUpdate,
    LeaveRequestCreate,
    LeaveRequestListResponse,
    LeaveRequestResponse,
    LeaveTransitionRequest,
    PolicyUpdateResult,
    TenantBalancesResponse,
)
from leave_ledger.services.approvals import Actor
from leave_ledger.services.directory import SqlEmployeeDirectory
from leave_ledger.services.ledger import LedgerService
from leave_ledger.services.policy_store import PolicyStore
from leave_ledger.services.workflow import LeaveWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/leave", tags=["leave"])


def _policy_response(policy) -> dict:
    return {
        "tenant_id": policy.tenant_id,
        "quotas": policy.quotas,
        "last_updated_at": policy.last_updated_at,
        "updated_by": policy.updated_by,
    }


def _ensure_employee(directory: SqlEmployeeDirectory, tenant_id: str, employee_id: str) -> None:
    if not directory.exists(tenant_id, employee_id):
        raise NotFoundError("Employee not found", details={"employee_id": employee_id})


# --- Requests ---

@router.post("/requests", response_model=LeaveRequestResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(write_limit)
def create_leave_request(
    request: Request,
    payload: LeaveRequestCreate,
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveWorkflow = Depends(get_workflow),
):
    return workflow.create(
        tenant_id,
        payload.employee_id,
        payload.leave_type,
        payload.start_date,
        payload.end_date,
        payload.reason,
        approver=payload.approver,
        actor=actor,
    )


@router.get("/requests", response_model=LeaveRequestListResponse)
def list_leave_requests(
    employee_id: Optional[str] = None,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveWorkflow = Depends(get_workflow),
):
    items, total = workflow.list_requests(tenant_id, employee_id, status, page, page_size)
    return {"items": items, "total": total, "page": page, "page_size": page_size}


@router.get("/requests/{request_id}", response_model=LeaveRequestResponse)
def get_leave_request(
    request_id: int,
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveWorkflow = Depends(get_workflow),
):
    return workflow.get(tenant_id, request_id)


@router.post("/requests/{request_id}/{action}", response_model=LeaveRequestResponse)
@limiter.limit(write_limit)
def transition_leave_request(
    request: Request,
    request_id: int,
    action: str,
    payload: Optional[LeaveTransitionRequest] = None,
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveWorkflow = Depends(get_workflow),
):
    reason = payload.reason if payload else None
    return workflow.transition(tenant_id, request_id, action, actor, reason)


@router.delete("/requests/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(write_limit)
def delete_leave_request(
    request: Request,
    request_id: int,
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_current_actor),
    workflow: LeaveWorkflow = Depends(get_workflow),
):
    workflow.delete(tenant_id, request_id, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Balances ---

@router.get("/balances", response_model=TenantBalancesResponse)
def get_all_balances(
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_current_actor),
    ledger: LedgerService = Depends(get_ledger),
):
    employees = {
        employee_id: {t: BalanceEntry(remaining=v.remaining, limit=v.limit) for t, v in balances.items()}
        for employee_id, balances in ledger.get_all_balances(tenant_id).items()
    }
    return {"tenant_id": tenant_id, "employees": employees}


@router.get("/balances/{employee_id}", response_model=EmployeeBalanceResponse)
def get_employee_balance(
    employee_id: str,
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_current_actor),
    ledger: LedgerService = Depends(get_ledger),
    directory: SqlEmployeeDirectory = Depends(get_directory),
):
    _ensure_employee(directory, tenant_id, employee_id)
    balances = ledger.get_balances(tenant_id, employee_id)
    return {
        "employee_id": employee_id,
        "balances": {t: BalanceEntry(remaining=v.remaining, limit=v.limit) for t, v in balances.items()},
    }


@router.post("/balances/{employee_id}/recompute", response_model=EmployeeBalanceResponse)
def recompute_employee_balance(
    employee_id: str,
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(require_policy_admin),
    ledger: LedgerService = Depends(get_ledger),
    directory: SqlEmployeeDirectory = Depends(get_directory),
):
    _ensure_employee(directory, tenant_id, employee_id)
    ledger.recompute_one(tenant_id, employee_id)
    logger.info(f"Balances recomputed for {employee_id} by {actor.id}")
    balances = ledger.get_balances(tenant_id, employee_id)
    return {
        "employee_id": employee_id,
        "balances": {t: BalanceEntry(remaining=v.remaining, limit=v.limit) for t, v in balances.items()},
    }


@router.get("/eligibility", response_model=LeaveEligibilityResponse)
def check_eligibility(
    employee_id: str,
    leave_type: LeaveType,
    days: int = Query(..., ge=1),
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_current_actor),
    ledger: LedgerService = Depends(get_ledger),
    directory: SqlEmployeeDirectory = Depends(get_directory),
):
    _ensure_employee(directory, tenant_id, employee_id)
    with ledger.hold(tenant_id, employee_id, leave_type):
        remaining = ledger.available(tenant_id, employee_id, leave_type)
        commit_or_rollback(ledger.db)
    return {
        "eligible": remaining >= days,
        "leave_type": leave_type,
        "days_requested": days,
        "remaining_balance": remaining,
    }


# --- Policy ---

@router.get("/policy", response_model=LeavePolicyResponse)
def get_policy(
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(get_current_actor),
    policies: PolicyStore = Depends(get_policy_store),
):
    policy = policies.get_or_create(tenant_id)
    commit_or_rollback(policies.db)
    return _policy_response(policy)


@router.put("/policy", response_model=PolicyUpdateResult)
@limiter.limit(write_limit)
def update_policy(
    request: Request,
    payload: LeavePolicyUpdate,
    tenant_id: str = Depends(get_tenant_id),
    actor: Actor = Depends(require_policy_admin),
    ledger: LedgerService = Depends(get_ledger),
):
    try:
        policy = ledger.policies.update(tenant_id, payload.quotas, actor.id)
    except Exception:
        ledger.db.rollback()
        raise
    commit_or_rollback(ledger.db)

    # Follow-on: bring every balance in line with the new quotas
    recomputed = ledger.recompute_all(tenant_id)
    return {**_policy_response(policy), "employees_recomputed": recomputed}
