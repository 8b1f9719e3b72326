import logging
from datetime import date

from leave_ledger.models.notification import Notification
from leave_ledger.services.notification import (
    LeaveEvent,
    LeaveNotice,
    NotificationDispatcher,
    NotificationService,
    render_message,
)

from conftest import TENANT, RecordingSink, ExplodingSink


def _notice(**overrides):
    fields = dict(
        request_id=7,
        tenant_id=TENANT,
        employee_id="EMP001",
        employee_name="Alice Example",
        leave_type="annual",
        start_date=date(2026, 3, 2),
        end_date=date(2026, 3, 6),
        days=5,
        status="approved",
        approver="HR/Admin",
    )
    fields.update(overrides)
    return LeaveNotice(**fields)


def test_render_messages():
    notice = _notice()
    assert render_message(LeaveEvent.APPLIED, notice) == (
        "Alice Example applied for 5 days of annual leave (2026-03-02 to 2026-03-06)."
    )
    assert "has been APPROVED" in render_message(LeaveEvent.APPROVED, notice)
    rejected = _notice(status="rejected", rejection_reason="Busy season")
    assert render_message(LeaveEvent.REJECTED, rejected).endswith("Reason: Busy season")


def test_service_writes_one_row_per_recipient(session_factory, db_session):
    NotificationService(session_factory).notify(
        LeaveEvent.CANCELLED, _notice(status="cancelled"), ["alice@example.com", "HR/Admin"]
    )

    rows = db_session.query(Notification).order_by(Notification.id).all()
    assert [r.recipient for r in rows] == ["alice@example.com", "HR/Admin"]
    assert {r.event for r in rows} == {"cancelled"}
    assert rows[0].title == "Leave Cancelled"
    assert rows[0].leave_request_id == 7
    assert rows[0].is_read is False


def test_dispatcher_drops_duplicate_and_empty_recipients():
    sink = RecordingSink()
    NotificationDispatcher(sink).dispatch(LeaveEvent.APPROVED, _notice(), ["a@x.io", None, "a@x.io", ""])
    assert sink.calls[0][2] == ["a@x.io"]


def test_dispatcher_defers_through_schedule():
    sink = RecordingSink()
    queued = []
    dispatcher = NotificationDispatcher(sink, schedule=lambda fn, *args: queued.append((fn, args)))

    dispatcher.dispatch(LeaveEvent.APPLIED, _notice(), ["HR/Admin"])
    assert sink.calls == []

    fn, args = queued[0]
    fn(*args)
    assert sink.events == ["applied"]


def test_disabled_dispatcher_is_silent():
    sink = RecordingSink()
    NotificationDispatcher(sink, enabled=False).dispatch(LeaveEvent.APPLIED, _notice(), ["HR/Admin"])
    NotificationDispatcher(None).dispatch(LeaveEvent.APPLIED, _notice(), ["HR/Admin"])
    assert sink.calls == []


def test_sink_failure_is_logged_not_raised(caplog):
    with caplog.at_level(logging.WARNING, logger="leave_ledger.services.notification"):
        NotificationDispatcher(ExplodingSink()).dispatch(LeaveEvent.APPROVED, _notice(), ["a@x.io"])
    assert "Notification failed" in caplog.text
