import pytest
import os
from datetime import date
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["DEFAULT_TENANT_ID"] = "TENANT01"

from leave_ledger.database import Base, get_db
from leave_ledger.dependencies import get_notification_sink
from leave_ledger.main import app
import leave_ledger.models  # noqa: F401
from leave_ledger.core.limiter import limiter
from leave_ledger.core.locks import KeyedLockRegistry
from leave_ledger.models.employee import Employee
from leave_ledger.models.leave_request import LeaveRequest, LeaveStatus
from leave_ledger.services.approvals import Actor, UserRole
from leave_ledger.services.directory import SqlEmployeeDirectory
from leave_ledger.services.ledger import LedgerService
from leave_ledger.services.notification import NotificationDispatcher
from leave_ledger.services.workflow import LeaveWorkflow
from fastapi.testclient import TestClient

TENANT = "TENANT01"
OTHER_TENANT = "TENANT02"

# Monday..Friday, five inclusive days
MON = date(2026, 3, 2)
FRI = date(2026, 3, 6)


class RecordingSink:
    """NotificationSink double that keeps every call."""

    def __init__(self):
        self.calls = []

    def notify(self, event, request, recipients):
        self.calls.append((event, request, list(recipients)))

    @property
    def events(self):
        return [event.value for event, _, _ in self.calls]


class ExplodingSink:
    def notify(self, event, request, recipients):
        raise RuntimeError("mail relay down")


@pytest.fixture(scope="function")
def engine():
    """A private in-memory database per test; services commit and roll back freely."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()

@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture(scope="function")
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()

@pytest.fixture(scope="function")
def employees(db_session):
    """Seed the directory: two staff and a manager in TENANT01, one outsider in TENANT02."""
    people = [
        Employee(id="EMP001", tenant_id=TENANT, full_name="Alice Example", email="alice@example.com"),
        Employee(id="EMP002", tenant_id=TENANT, full_name="Bob Example", email="bob@example.com"),
        Employee(id="MGR001", tenant_id=TENANT, full_name="Morgan Manager", email="morgan@example.com"),
        Employee(id="EXT001", tenant_id=OTHER_TENANT, full_name="Olga Outside", email="olga@example.com"),
    ]
    db_session.add_all(people)
    db_session.commit()
    return people

@pytest.fixture(scope="function")
def locks():
    return KeyedLockRegistry(timeout=5)

@pytest.fixture(scope="function")
def sink():
    return RecordingSink()

@pytest.fixture(scope="function")
def ledger(db_session, employees, locks):
    return LedgerService(db_session, locks=locks, directory=SqlEmployeeDirectory(db_session))

@pytest.fixture(scope="function")
def workflow(db_session, ledger, sink, locks):
    return LeaveWorkflow(
        db_session,
        ledger=ledger,
        directory=ledger.directory,
        notifier=NotificationDispatcher(sink),
        locks=locks,
    )

@pytest.fixture(scope="function")
def manager():
    return Actor(id="MGR001", role=UserRole.MANAGER)

@pytest.fixture(scope="function")
def hr_admin():
    return Actor(id="HR001", role=UserRole.HR_ADMIN)

@pytest.fixture(scope="function")
def add_request(db_session):
    """Insert a request row directly, bypassing the workflow, to shape history."""
    def _add(employee_id, leave_type="annual", days=1, status=LeaveStatus.APPROVED, tenant_id=TENANT):
        req = LeaveRequest(
            tenant_id=tenant_id,
            employee_id=employee_id,
            leave_type=leave_type,
            start_date=MON,
            end_date=date.fromordinal(MON.toordinal() + days - 1),
            days=days,
            reason="history",
            status=status.value,
        )
        db_session.add(req)
        db_session.commit()
        return req
    return _add

@pytest.fixture(scope="function")
def client(db_session, employees, sink):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_sink] = lambda: sink
    limiter.reset()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()

def headers(actor_id="EMP001", role="EMPLOYEE", tenant=TENANT):
    return {"X-Actor-Id": actor_id, "X-Actor-Role": role, "X-Tenant-Id": tenant}
