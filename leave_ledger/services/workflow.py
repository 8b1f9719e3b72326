"""
Leave Request Workflow

State machine for individual leave requests:

    pending --approve--> approved --cancel--> cancelled
       |--reject--> rejected
       |--cancel--> cancelled

Every transition and delete runs under the request's lock, then (when the
ledger is involved) the balance lock, and commits before either lock is
released. Notifications go out only after the commit.
"""
from contextlib import contextmanager
from datetime import date, datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError
from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_random

from leave_ledger.core.config import settings
from leave_ledger.core.exceptions import (
    AccessDeniedError,
    AlreadyProcessedError,
    ConcurrencyConflictError,
    InsufficientBalanceError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from leave_ledger.core.locks import KeyedLockRegistry, request_key
from leave_ledger.database import commit_or_rollback
from leave_ledger.models.leave_policy import LeaveType
from leave_ledger.models.leave_request import LeaveRequest, LeaveStatus
from leave_ledger.services.approvals import Actor, ApprovalGuard, RoleApprovalGuard
from leave_ledger.services.base import BaseService, utcnow
from leave_ledger.services.directory import EmployeeDirectory, SqlEmployeeDirectory
from leave_ledger.services.ledger import LedgerService
from leave_ledger.services.notification import LeaveEvent, LeaveNotice, NotificationDispatcher

TRANSITIONS = {
    "approve": frozenset({LeaveStatus.PENDING}),
    "reject": frozenset({LeaveStatus.PENDING}),
    "cancel": frozenset({LeaveStatus.PENDING, LeaveStatus.APPROVED}),
}


def count_days(start_date: date, end_date: date) -> int:
    """Inclusive calendar days between two dates."""
    return (end_date - start_date).days + 1


def parse_leave_type(value) -> LeaveType:
    try:
        return LeaveType(getattr(value, "value", value))
    except ValueError:
        raise ValidationError(
            f"Unknown leave type: {value}",
            details={"allowed": [t.value for t in LeaveType]},
        )


def parse_date(value, field: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError("Invalid date format", details={"field": field, "value": str(value)})


class LeaveWorkflow(BaseService):

    def __init__(
        self,
        db,
        ledger: Optional[LedgerService] = None,
        directory: Optional[EmployeeDirectory] = None,
        guard: Optional[ApprovalGuard] = None,
        notifier: Optional[NotificationDispatcher] = None,
        locks: Optional[KeyedLockRegistry] = None,
    ):
        super().__init__(db)
        self.directory = directory or SqlEmployeeDirectory(db)
        self.ledger = ledger or LedgerService(db, directory=self.directory, locks=locks)
        self.guard = guard or RoleApprovalGuard()
        self.notifier = notifier or NotificationDispatcher(None)
        self.locks = locks or self.ledger.locks

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self):
        """Roll back on any failure; storage errors surface as PersistenceError."""
        try:
            yield
        except StaleDataError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            self._logger.error(f"Leave workflow storage failure: {e}", exc_info=True)
            raise PersistenceError("Could not save leave request changes") from e
        except Exception:
            self.db.rollback()
            raise

    def _load_for_update(self, tenant_id: str, request_id: int) -> LeaveRequest:
        request = self.db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.tenant_id == tenant_id, LeaveRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if request is None:
            raise NotFoundError("Leave request not found", details={"request_id": request_id})
        return request

    @staticmethod
    def _ensure_status(request: LeaveRequest, action: str) -> LeaveStatus:
        status = LeaveStatus(request.status)
        if status not in TRANSITIONS[action]:
            raise AlreadyProcessedError(request.id, status.value, action)
        return status

    def _run(self, tenant_id: str, request_id: int, step: Callable[[LeaveRequest], Optional[LeaveEvent]]):
        """
        Execute one transition under the request lock. A lost optimistic
        version race rolls back and replays the whole step.
        """
        def log_retry(retry_state):
            self.log_warning(
                "Retrying leave transition after version conflict",
                tenant_id=tenant_id,
                leave_request_id=request_id,
                attempt=retry_state.attempt_number,
            )

        retrying = Retrying(
            stop=stop_after_attempt(settings.ledger.max_conflict_retries + 1),
            wait=wait_random(0, 0.05),
            retry=retry_if_exception_type(StaleDataError),
            before_sleep=log_retry,
        )
        try:
            for attempt in retrying:
                with attempt:
                    with self.locks.hold(request_key(tenant_id, request_id)):
                        with self._transaction():
                            request = self._load_for_update(tenant_id, request_id)
                            event = step(request)
        except RetryError:
            raise ConcurrencyConflictError("Leave balance changed concurrently, please retry")
        return request, event

    def _notify(self, event: LeaveEvent, request: LeaveRequest, actor_id: Optional[str] = None) -> None:
        notice = LeaveNotice.from_request(request, actor_id=actor_id)
        employee = request.employee_email or request.employee_id
        if event == LeaveEvent.APPLIED:
            recipients = [request.approver]
        elif event == LeaveEvent.CANCELLED:
            recipients = [employee, request.approver]
        else:
            recipients = [employee]
        self.notifier.dispatch(event, notice, recipients)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create(
        self,
        tenant_id: str,
        employee_id: str,
        leave_type,
        start_date,
        end_date,
        reason: str,
        approver: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> LeaveRequest:
        """`actor` is checked against the guard when given; scripts and seeding pass none."""
        if actor is not None and not self.guard.can_apply(actor, employee_id):
            raise AccessDeniedError("You are not allowed to apply for leave on behalf of this employee")
        leave_type = parse_leave_type(leave_type)
        start_date = parse_date(start_date, "start_date")
        end_date = parse_date(end_date, "end_date")
        if end_date < start_date:
            raise ValidationError("End date cannot be before start date")
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A reason is required")

        info = self.directory.info(tenant_id, employee_id)
        if info is None:
            raise NotFoundError("Employee not found", details={"employee_id": employee_id})

        days = count_days(start_date, end_date)
        with self.ledger.hold(tenant_id, employee_id, leave_type):
            with self._transaction():
                if not self.ledger.check_sufficient(tenant_id, employee_id, leave_type, days):
                    available = self.ledger.available(tenant_id, employee_id, leave_type)
                    raise InsufficientBalanceError(leave_type.value, available, days)

                request = LeaveRequest(
                    tenant_id=tenant_id,
                    employee_id=employee_id,
                    employee_name=info.name,
                    employee_email=info.email,
                    leave_type=leave_type.value,
                    start_date=start_date,
                    end_date=end_date,
                    days=days,
                    reason=reason,
                    status=LeaveStatus.PENDING.value,
                    approver=approver or settings.ledger.default_approver,
                    applied_at=utcnow(),
                )
                self.db.add(request)
                commit_or_rollback(self.db)

        self.log_info(
            "Leave request created",
            tenant_id=tenant_id,
            employee_id=employee_id,
            leave_request_id=request.id,
            leave_type=leave_type.value,
            days=days,
        )
        self._notify(LeaveEvent.APPLIED, request)
        return request

    def approve(self, tenant_id: str, request_id: int, actor: Actor) -> LeaveRequest:
        def step(request: LeaveRequest) -> LeaveEvent:
            if not self.guard.can_approve(actor, request):
                raise AccessDeniedError("You are not allowed to approve this leave request")
            self._ensure_status(request, "approve")

            with self.ledger.hold(tenant_id, request.employee_id, request.leave_type):
                self.ledger.deduct(tenant_id, request.employee_id, request.leave_type, request.days)
                now = utcnow()
                request.status = LeaveStatus.APPROVED.value
                request.approved_at = now
                request.approved_by = actor.id
                request.rejected_at = None
                request.rejected_by = None
                request.rejection_reason = None
                request.updated_at = now
                commit_or_rollback(self.db)
            return LeaveEvent.APPROVED

        request, event = self._run(tenant_id, request_id, step)
        self.log_info("Leave request approved", tenant_id=tenant_id, leave_request_id=request_id, actor=actor.id)
        self._notify(event, request, actor.id)
        return request

    def reject(self, tenant_id: str, request_id: int, actor: Actor, reason: Optional[str] = None) -> LeaveRequest:
        def step(request: LeaveRequest) -> LeaveEvent:
            if not self.guard.can_approve(actor, request):
                raise AccessDeniedError("You are not allowed to reject this leave request")
            self._ensure_status(request, "reject")

            now = utcnow()
            request.status = LeaveStatus.REJECTED.value
            request.rejected_at = now
            request.rejected_by = actor.id
            request.rejection_reason = (reason or "").strip() or None
            request.approved_at = None
            request.approved_by = None
            request.updated_at = now
            commit_or_rollback(self.db)
            return LeaveEvent.REJECTED

        request, event = self._run(tenant_id, request_id, step)
        self.log_info("Leave request rejected", tenant_id=tenant_id, leave_request_id=request_id, actor=actor.id)
        self._notify(event, request, actor.id)
        return request

    def cancel(self, tenant_id: str, request_id: int, actor: Actor) -> LeaveRequest:
        def step(request: LeaveRequest) -> LeaveEvent:
            if not self.guard.can_cancel(actor, request):
                raise AccessDeniedError("You are not allowed to cancel this leave request")
            prior = self._ensure_status(request, "cancel")

            with self.ledger.hold(tenant_id, request.employee_id, request.leave_type):
                if prior == LeaveStatus.APPROVED:
                    # Give back exactly what approval took
                    self.ledger.restore(tenant_id, request.employee_id, request.leave_type, request.days)
                now = utcnow()
                request.status = LeaveStatus.CANCELLED.value
                request.cancelled_at = now
                request.cancelled_by = actor.id
                request.updated_at = now
                commit_or_rollback(self.db)
            return LeaveEvent.CANCELLED

        request, event = self._run(tenant_id, request_id, step)
        self.log_info("Leave request cancelled", tenant_id=tenant_id, leave_request_id=request_id, actor=actor.id)
        self._notify(event, request, actor.id)
        return request

    def transition(
        self,
        tenant_id: str,
        request_id: int,
        action: str,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> LeaveRequest:
        action = (action or "").lower()
        if action == "approve":
            return self.approve(tenant_id, request_id, actor)
        if action == "reject":
            return self.reject(tenant_id, request_id, actor, reason)
        if action == "cancel":
            return self.cancel(tenant_id, request_id, actor)
        raise ValidationError(f"Invalid action: {action}", details={"allowed": sorted(TRANSITIONS)})

    def delete(self, tenant_id: str, request_id: int, actor: Actor) -> None:
        """Remove a request for good. Approved days go back to the ledger before the row is lost."""
        def step(request: LeaveRequest) -> None:
            if not self.guard.can_cancel(actor, request):
                raise AccessDeniedError("You are not allowed to delete this leave request")

            with self.ledger.hold(tenant_id, request.employee_id, request.leave_type):
                if request.status == LeaveStatus.APPROVED.value:
                    self.ledger.restore(tenant_id, request.employee_id, request.leave_type, request.days)
                self.db.delete(request)
                commit_or_rollback(self.db)
            return None

        self._run(tenant_id, request_id, step)
        self.log_info("Leave request deleted", tenant_id=tenant_id, leave_request_id=request_id, actor=actor.id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, tenant_id: str, request_id: int) -> LeaveRequest:
        request = self.db.execute(
            select(LeaveRequest).where(LeaveRequest.tenant_id == tenant_id, LeaveRequest.id == request_id)
        ).scalar_one_or_none()
        if request is None:
            raise NotFoundError("Leave request not found", details={"request_id": request_id})
        return request

    def list_requests(
        self,
        tenant_id: str,
        employee_id: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[LeaveRequest], int]:
        """Newest first, with the total count for pagination."""
        filters = [LeaveRequest.tenant_id == tenant_id]
        if employee_id:
            filters.append(LeaveRequest.employee_id == employee_id)
        if status:
            try:
                filters.append(LeaveRequest.status == LeaveStatus(status).value)
            except ValueError:
                raise ValidationError(f"Invalid status: {status}")

        total = self.db.execute(select(func.count(LeaveRequest.id)).where(*filters)).scalar_one()
        items = self.db.execute(
            select(LeaveRequest)
            .where(*filters)
            .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).scalars().all()
        return list(items), total
