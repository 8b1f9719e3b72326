"""
Recompute every leave balance of a tenant from policy and approved history.

Usage: python scripts/recompute_balances.py [TENANT_ID]
"""
import sys

from leave_ledger.core.config import settings
from leave_ledger.core.logging import setup_logging
from leave_ledger.database import SessionLocal, init_db
from leave_ledger.services.directory import SqlEmployeeDirectory
from leave_ledger.services.ledger import LedgerService


def main(tenant_id: str) -> None:
    setup_logging()
    init_db()
    db = SessionLocal()
    try:
        ledger = LedgerService(db, directory=SqlEmployeeDirectory(db))
        count = ledger.recompute_all(tenant_id)
        print(f"Recomputed balances for {count} employee(s) in {tenant_id}")
    finally:
        db.close()


if __name__ == "__main__":
    main(sys.argv[1] if len(sys.argv) > 1 else settings.default_tenant_id)
