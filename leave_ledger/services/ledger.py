"""
Leave Ledger Service

The single owner of leave balance consistency.

Approved request history is the source of truth; a LeaveBalance row caches
max(0, quota - usage) for one (tenant, employee, leave type). Every change
to that cache, whether a recompute, a deduct or a restore, goes through
`_write`, which clamps to [0, quota] and stamps `recomputed_at`. Deduct and
restore are checked against history inside the same locked transaction, so
the incremental fast path can never drift from a full recompute.

Locking:
- `hold()` takes the in-process per-key lock; callers keep it open until
  they commit so no other writer interleaves between flush and commit.
- Rows are read with SELECT ... FOR UPDATE (a row lock on PostgreSQL).
- LeaveBalance carries a version column; a lost update raises StaleDataError.

deduct/restore are called before the request's own status change is
applied, so usage read inside them still reflects the prior status.
"""
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from sqlalchemy import select

from leave_ledger.core.config import settings
from leave_ledger.core.exceptions import InsufficientBalanceError, ValidationError
from leave_ledger.core.locks import KeyedLockRegistry, balance_key, lock_registry
from leave_ledger.database import commit_or_rollback
from leave_ledger.models.leave_balance import LeaveBalance
from leave_ledger.models.leave_policy import LeavePolicy, LeaveType
from leave_ledger.models.leave_request import LeaveRequest
from leave_ledger.services.base import BaseService, as_utc, utcnow
from leave_ledger.services.policy_store import PolicyStore, insert_for
from leave_ledger.services.usage import UsageAggregator


@dataclass(frozen=True)
class BalanceView:
    remaining: int
    limit: int


class LedgerService(BaseService):

    def __init__(
        self,
        db,
        policies: Optional[PolicyStore] = None,
        usage: Optional[UsageAggregator] = None,
        locks: Optional[KeyedLockRegistry] = None,
        directory=None,
    ):
        super().__init__(db)
        self.policies = policies or PolicyStore(db)
        self.usage = usage or UsageAggregator(db)
        self.locks = locks or lock_registry
        self.directory = directory

    # ------------------------------------------------------------------
    # Locking and row access
    # ------------------------------------------------------------------

    @contextmanager
    def hold(self, tenant_id: str, employee_id: str, *leave_types) -> Iterator[None]:
        """Lock the given balance keys (every leave type when none are given)."""
        types = [LeaveType(t) for t in leave_types] or list(LeaveType)
        with self.locks.hold(*(balance_key(tenant_id, employee_id, t) for t in types)):
            yield

    def _select(self, tenant_id: str, employee_id: str, leave_type: LeaveType):
        return (
            select(LeaveBalance)
            .where(
                LeaveBalance.tenant_id == tenant_id,
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type == leave_type.value,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    def _load(self, tenant_id: str, employee_id: str, leave_type: LeaveType) -> LeaveBalance:
        row = self.db.execute(self._select(tenant_id, employee_id, leave_type)).scalar_one_or_none()
        if row is not None:
            return row

        # Unseeded placeholder; recomputed_at=None marks it stale so the caller seeds it
        insert = insert_for(self.db.get_bind().dialect.name)
        self.db.execute(
            insert(LeaveBalance)
            .values(
                tenant_id=tenant_id,
                employee_id=employee_id,
                leave_type=leave_type.value,
                remaining_days=0,
                recomputed_at=None,
                updated_at=utcnow(),
                version=1,
            )
            .on_conflict_do_nothing(index_elements=["tenant_id", "employee_id", "leave_type"])
        )
        return self.db.execute(self._select(tenant_id, employee_id, leave_type)).scalar_one()

    @staticmethod
    def _is_stale(row: LeaveBalance, policy: LeavePolicy) -> bool:
        if row.recomputed_at is None:
            return True
        return as_utc(policy.last_updated_at) > as_utc(row.recomputed_at)

    @staticmethod
    def _expected(quota: int, usage: int) -> int:
        return max(0, quota - usage)

    def _write(self, row: LeaveBalance, value: int, quota: int, reason: str) -> int:
        value = max(0, min(quota, value))
        before = row.remaining_days
        now = utcnow()
        row.remaining_days = value
        row.recomputed_at = now
        row.updated_at = now
        self.db.flush()
        if before != value:
            self.log_info(
                "Leave balance written",
                tenant_id=row.tenant_id,
                employee_id=row.employee_id,
                leave_type=row.leave_type,
                reason=reason,
                before=before,
                after=value,
            )
        return value

    @staticmethod
    def _check_days(days: int) -> None:
        if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
            raise ValidationError("Days must be a positive whole number", details={"days": repr(days)})

    def _fresh(self, tenant_id: str, employee_id: str, leave_type: LeaveType, policy: LeavePolicy) -> LeaveBalance:
        """Load the balance row, recomputing it from history when missing or older than the policy."""
        row = self._load(tenant_id, employee_id, leave_type)
        if self._is_stale(row, policy):
            self.db.flush()
            quota = policy.quota_for(leave_type)
            usage = self.usage.usage_of(tenant_id, employee_id, leave_type)
            self._write(row, self._expected(quota, usage), quota, reason="refresh")
        return row

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def available(self, tenant_id: str, employee_id: str, leave_type) -> int:
        leave_type = LeaveType(leave_type)
        with self.hold(tenant_id, employee_id, leave_type):
            policy = self.policies.get_or_create(tenant_id)
            return self._fresh(tenant_id, employee_id, leave_type, policy).remaining_days

    def check_sufficient(self, tenant_id: str, employee_id: str, leave_type, days: int) -> bool:
        return self.available(tenant_id, employee_id, leave_type) >= days

    def get_balances(self, tenant_id: str, employee_id: str) -> Dict[LeaveType, BalanceView]:
        with self.hold(tenant_id, employee_id):
            policy = self.policies.get_or_create(tenant_id)
            balances = {
                t: BalanceView(
                    remaining=self._fresh(tenant_id, employee_id, t, policy).remaining_days,
                    limit=policy.quota_for(t),
                )
                for t in LeaveType
            }
            commit_or_rollback(self.db)
        return balances

    def get_all_balances(self, tenant_id: str) -> Dict[str, Dict[LeaveType, BalanceView]]:
        """Self-healing read: recompute the whole tenant, then report every balance."""
        self.recompute_all(tenant_id)
        policy = self.policies.get_or_create(tenant_id)
        rows = self.db.execute(
            select(LeaveBalance)
            .where(LeaveBalance.tenant_id == tenant_id)
            .order_by(LeaveBalance.employee_id, LeaveBalance.leave_type)
        ).scalars().all()

        result: Dict[str, Dict[LeaveType, BalanceView]] = {}
        for row in rows:
            leave_type = LeaveType(row.leave_type)
            result.setdefault(row.employee_id, {})[leave_type] = BalanceView(
                remaining=row.remaining_days, limit=policy.quota_for(leave_type)
            )
        return result

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def deduct(self, tenant_id: str, employee_id: str, leave_type, days: int) -> int:
        """
        Take `days` off the balance. Raises InsufficientBalanceError before
        writing anything if history says fewer days remain. Flushes only;
        the caller commits while still inside `hold`.
        """
        leave_type = LeaveType(leave_type)
        self._check_days(days)
        with self.hold(tenant_id, employee_id, leave_type):
            self.db.flush()
            policy = self.policies.get_or_create(tenant_id)
            quota = policy.quota_for(leave_type)
            row = self._load(tenant_id, employee_id, leave_type)
            available = self._expected(quota, self.usage.usage_of(tenant_id, employee_id, leave_type))

            if row.remaining_days != available and not self._is_stale(row, policy):
                self.log_warning(
                    "Leave balance drift repaired from history",
                    tenant_id=tenant_id,
                    employee_id=employee_id,
                    leave_type=leave_type.value,
                    cached=row.remaining_days,
                    expected=available,
                )

            if available < days:
                raise InsufficientBalanceError(leave_type.value, available, days)

            return self._write(row, available - days, quota, reason="deduct")

    def restore(self, tenant_id: str, employee_id: str, leave_type, days: int) -> int:
        """
        Give `days` back, never above the quota. Guarding against restoring
        the same request twice is the workflow's job.
        """
        leave_type = LeaveType(leave_type)
        self._check_days(days)
        with self.hold(tenant_id, employee_id, leave_type):
            self.db.flush()
            policy = self.policies.get_or_create(tenant_id)
            quota = policy.quota_for(leave_type)
            row = self._load(tenant_id, employee_id, leave_type)
            usage_after = max(0, self.usage.usage_of(tenant_id, employee_id, leave_type) - days)
            expected = self._expected(quota, usage_after)

            incremental = min(quota, row.remaining_days + days)
            if incremental != expected and not self._is_stale(row, policy):
                self.log_warning(
                    "Incremental restore disagrees with history; using history",
                    tenant_id=tenant_id,
                    employee_id=employee_id,
                    leave_type=leave_type.value,
                    incremental=incremental,
                    expected=expected,
                )

            return self._write(row, expected, quota, reason="restore")

    def _recompute(self, tenant_id: str, employee_id: str) -> Dict[LeaveType, int]:
        self.db.flush()
        policy = self.policies.get_or_create(tenant_id)
        usage = self.usage.usage_for(tenant_id, employee_id)
        result = {}
        for leave_type in LeaveType:
            quota = policy.quota_for(leave_type)
            row = self._load(tenant_id, employee_id, leave_type)
            result[leave_type] = self._write(row, self._expected(quota, usage[leave_type]), quota, reason="recompute")
        return result

    def recompute_one(self, tenant_id: str, employee_id: str) -> Dict[LeaveType, int]:
        """Overwrite every balance of one employee from policy and history, then commit."""
        with self.hold(tenant_id, employee_id):
            result = self._recompute(tenant_id, employee_id)
            commit_or_rollback(self.db)
        return result

    def recompute_all(self, tenant_id: str) -> int:
        """
        Recompute every employee of the tenant, one employee's locks at a time.
        Idempotent; a partial run followed by a retry converges.
        """
        self.policies.get_or_create(tenant_id)
        commit_or_rollback(self.db)

        employee_ids = self.tenant_employee_ids(tenant_id)
        chunk_size = settings.ledger.recompute_chunk_size
        processed = 0
        for start in range(0, len(employee_ids), chunk_size):
            chunk = employee_ids[start:start + chunk_size]
            for employee_id in chunk:
                self.recompute_one(tenant_id, employee_id)
                processed += 1
            self.log_info(
                "Recompute chunk finished",
                tenant_id=tenant_id,
                processed=processed,
                total=len(employee_ids),
            )
        return processed

    def tenant_employee_ids(self, tenant_id: str) -> List[str]:
        """Everyone who has, or could have, a balance: the directory plus ledger and request history."""
        ids = set(
            self.db.execute(
                select(LeaveBalance.employee_id).where(LeaveBalance.tenant_id == tenant_id).distinct()
            ).scalars()
        )
        ids.update(
            self.db.execute(
                select(LeaveRequest.employee_id).where(LeaveRequest.tenant_id == tenant_id).distinct()
            ).scalars()
        )
        if self.directory is not None:
            ids.update(self.directory.employee_ids(tenant_id))
        return sorted(ids)
