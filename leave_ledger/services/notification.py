import enum
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional, Protocol

from leave_ledger.models.notification import Notification

logger = logging.getLogger(__name__)


class LeaveEvent(str, enum.Enum):
    APPLIED = "applied"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class LeaveNotice:
    """Detached snapshot of a request, safe to hand to a background task after the session closes."""
    request_id: int
    tenant_id: str
    employee_id: str
    employee_name: Optional[str]
    leave_type: str
    start_date: date
    end_date: date
    days: int
    status: str
    approver: Optional[str] = None
    actor_id: Optional[str] = None
    rejection_reason: Optional[str] = None

    @classmethod
    def from_request(cls, request, actor_id: Optional[str] = None) -> "LeaveNotice":
        return cls(
            request_id=request.id,
            tenant_id=request.tenant_id,
            employee_id=request.employee_id,
            employee_name=request.employee_name,
            leave_type=request.leave_type,
            start_date=request.start_date,
            end_date=request.end_date,
            days=request.days,
            status=request.status,
            approver=request.approver,
            actor_id=actor_id,
            rejection_reason=request.rejection_reason,
        )


class NotificationSink(Protocol):
    def notify(self, event: LeaveEvent, request: LeaveNotice, recipients: List[str]) -> None: ...


_TITLES = {
    LeaveEvent.APPLIED: "Leave Request Submitted",
    LeaveEvent.APPROVED: "Leave Approved",
    LeaveEvent.REJECTED: "Leave Rejected",
    LeaveEvent.CANCELLED: "Leave Cancelled",
}


def render_message(event: LeaveEvent, notice: LeaveNotice) -> str:
    span = f"{notice.start_date.isoformat()} to {notice.end_date.isoformat()}"
    if event == LeaveEvent.APPLIED:
        who = notice.employee_name or notice.employee_id
        return f"{who} applied for {notice.days} days of {notice.leave_type} leave ({span})."
    if event == LeaveEvent.REJECTED and notice.rejection_reason:
        return f"Your {notice.leave_type} request ({span}) has been REJECTED. Reason: {notice.rejection_reason}"
    return f"Your {notice.leave_type} request for {notice.days} days ({span}) has been {event.value.upper()}."


class NotificationService:
    """
    Default sink: one Notification row per recipient, written in its own
    session so it never shares a transaction with a ledger mutation.
    """

    def __init__(self, session_factory: Callable):
        self.session_factory = session_factory

    def notify(self, event: LeaveEvent, request: LeaveNotice, recipients: List[str]) -> None:
        db = self.session_factory()
        try:
            for recipient in recipients:
                db.add(Notification(
                    tenant_id=request.tenant_id,
                    recipient=recipient,
                    event=event.value,
                    title=_TITLES[event],
                    message=render_message(event, request),
                    leave_request_id=request.request_id,
                ))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class NotificationDispatcher:
    """
    Fires sink calls after the workflow has committed. `schedule` defers the
    call (FastAPI's BackgroundTasks.add_task fits); without it delivery runs
    inline. Either way a failing sink is logged and never propagates.
    """

    def __init__(self, sink: Optional[NotificationSink], schedule: Optional[Callable] = None, enabled: bool = True):
        self.sink = sink
        self.schedule = schedule
        self.enabled = enabled and sink is not None

    def dispatch(self, event: LeaveEvent, notice: LeaveNotice, recipients: List[str]) -> None:
        recipients = [r for r in dict.fromkeys(recipients) if r]
        if not self.enabled or not recipients:
            return
        if self.schedule is not None:
            self.schedule(self._deliver, event, notice, recipients)
        else:
            self._deliver(event, notice, recipients)

    def _deliver(self, event: LeaveEvent, notice: LeaveNotice, recipients: List[str]) -> None:
        try:
            self.sink.notify(event, notice, recipients)
        except Exception as e:
            # Don't fail the request if notification fails
            logger.warning(
                f"Notification failed: {e}",
                exc_info=True,
                extra={"leave_request_id": notice.request_id, "event": event.value},
            )
