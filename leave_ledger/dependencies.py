"""
Service wiring for request handlers.

Each request gets services bound to its own session; the lock registry is
process-wide so concurrent requests on the same balance serialize.
"""
from fastapi import BackgroundTasks, Depends
from sqlalchemy.orm import Session

from leave_ledger.core.config import settings
from leave_ledger.core.locks import lock_registry
from leave_ledger.database import SessionLocal, get_db
from leave_ledger.services.approvals import RoleApprovalGuard
from leave_ledger.services.directory import SqlEmployeeDirectory
from leave_ledger.services.ledger import LedgerService
from leave_ledger.services.notification import NotificationDispatcher, NotificationService
from leave_ledger.services.policy_store import PolicyStore
from leave_ledger.services.workflow import LeaveWorkflow


def get_notification_sink():
    return NotificationService(SessionLocal)


def get_directory(db: Session = Depends(get_db)) -> SqlEmployeeDirectory:
    return SqlEmployeeDirectory(db)


def get_policy_store(db: Session = Depends(get_db)) -> PolicyStore:
    return PolicyStore(db)


def get_ledger(
    db: Session = Depends(get_db),
    directory: SqlEmployeeDirectory = Depends(get_directory),
) -> LedgerService:
    return LedgerService(db, policies=PolicyStore(db), locks=lock_registry, directory=directory)


def get_workflow(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger),
    directory: SqlEmployeeDirectory = Depends(get_directory),
    sink=Depends(get_notification_sink),
) -> LeaveWorkflow:
    notifier = NotificationDispatcher(
        sink,
        schedule=background_tasks.add_task,
        enabled=settings.notifications_enabled,
    )
    return LeaveWorkflow(
        db,
        ledger=ledger,
        directory=directory,
        guard=RoleApprovalGuard(),
        notifier=notifier,
        locks=lock_registry,
    )
