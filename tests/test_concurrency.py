"""
Races between approvals on the same balance and on the same request.

These use a file-backed SQLite database so every thread gets its own
connection, the way concurrent API requests do.
"""
import threading
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from leave_ledger.core.exceptions import (
    AlreadyProcessedError,
    ConcurrencyConflictError,
    InsufficientBalanceError,
)
from leave_ledger.core.locks import KeyedLockRegistry
from leave_ledger.database import Base
from leave_ledger.models.employee import Employee
from leave_ledger.models.leave_policy import LeaveType
from leave_ledger.models.leave_request import LeaveStatus
from leave_ledger.services.approvals import Actor, UserRole
from leave_ledger.services.directory import SqlEmployeeDirectory
from leave_ledger.services.ledger import LedgerService
from leave_ledger.services.workflow import LeaveWorkflow

from conftest import TENANT, MON

MANAGER = Actor(id="MGR001", role=UserRole.MANAGER)


@pytest.fixture
def file_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 15},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    with factory() as db:
        db.add(Employee(id="EMP001", tenant_id=TENANT, full_name="Alice Example", email="alice@example.com"))
        db.commit()
    yield factory
    engine.dispose()


def _workflow(db, locks):
    directory = SqlEmployeeDirectory(db)
    return LeaveWorkflow(
        db,
        ledger=LedgerService(db, locks=locks, directory=directory),
        directory=directory,
        locks=locks,
    )


def _race(factory, locks, request_ids):
    """Approve each request id from its own thread, all released at once."""
    barrier = threading.Barrier(len(request_ids))
    outcomes = []
    guard = threading.Lock()

    def worker(request_id):
        db = factory()
        try:
            workflow = _workflow(db, locks)
            barrier.wait()
            try:
                workflow.approve(TENANT, request_id, MANAGER)
                result = "approved"
            except (InsufficientBalanceError, AlreadyProcessedError) as e:
                result = type(e).__name__
            with guard:
                outcomes.append(result)
        finally:
            db.close()

    threads = [threading.Thread(target=worker, args=(rid,)) for rid in request_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join(30)
    return sorted(outcomes)


def _remaining(factory, locks):
    with factory() as db:
        ledger = LedgerService(db, locks=locks, directory=SqlEmployeeDirectory(db))
        return ledger.get_balances(TENANT, "EMP001")[LeaveType.ANNUAL].remaining


@pytest.mark.slow_locks
def test_two_approvals_cannot_overdraw(file_factory):
    locks = KeyedLockRegistry(timeout=10)
    with file_factory() as db:
        workflow = _workflow(db, locks)
        first = workflow.create(TENANT, "EMP001", "annual", MON, date(2026, 3, 5), "Trip one").id
        second = workflow.create(TENANT, "EMP001", "annual", date(2026, 3, 9), date(2026, 3, 12), "Trip two").id

    outcomes = _race(file_factory, locks, [first, second])

    assert outcomes == ["InsufficientBalanceError", "approved"]
    assert _remaining(file_factory, locks) == 2


@pytest.mark.slow_locks
def test_same_request_approved_once(file_factory):
    locks = KeyedLockRegistry(timeout=10)
    with file_factory() as db:
        request_id = _workflow(db, locks).create(TENANT, "EMP001", "annual", MON, MON, "Dentist").id

    outcomes = _race(file_factory, locks, [request_id, request_id])

    assert outcomes == ["AlreadyProcessedError", "approved"]
    assert _remaining(file_factory, locks) == 5


def test_version_conflict_is_retried(workflow, ledger, monkeypatch):
    req = workflow.create(TENANT, "EMP001", "annual", MON, MON, "Dentist")
    original = ledger.deduct
    attempts = []

    def flaky(*args, **kwargs):
        attempts.append(1)
        if len(attempts) == 1:
            raise StaleDataError("balance row version changed")
        return original(*args, **kwargs)

    monkeypatch.setattr(ledger, "deduct", flaky)

    approved = workflow.approve(TENANT, req.id, MANAGER)

    assert approved.status == LeaveStatus.APPROVED.value
    assert len(attempts) == 2
    assert ledger.get_balances(TENANT, "EMP001")[LeaveType.ANNUAL].remaining == 5


def test_persistent_version_conflict_gives_up(workflow, ledger, monkeypatch):
    from leave_ledger.core.config import settings
    monkeypatch.setattr(settings.ledger, "max_conflict_retries", 2)
    req = workflow.create(TENANT, "EMP001", "annual", MON, MON, "Dentist")
    attempts = []

    def always_stale(*args, **kwargs):
        attempts.append(1)
        raise StaleDataError("balance row version changed")

    monkeypatch.setattr(ledger, "deduct", always_stale)

    with pytest.raises(ConcurrencyConflictError):
        workflow.approve(TENANT, req.id, MANAGER)

    assert len(attempts) == 3
    assert workflow.get(TENANT, req.id).status == LeaveStatus.PENDING.value
