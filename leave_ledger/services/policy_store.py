"""
Leave policy store.

One LeavePolicy row per tenant, created lazily with the configured default
quotas. Updating a policy never touches balances; the administrative flow
follows it with LedgerService.recompute_all.
"""
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite

from leave_ledger.core.config import settings
from leave_ledger.core.exceptions import ValidationError
from leave_ledger.models.leave_policy import LeavePolicy, LeaveType
from leave_ledger.services.base import BaseService, utcnow


def default_quotas() -> dict:
    return {
        LeaveType.ANNUAL: settings.ledger.default_annual_quota,
        LeaveType.SICK: settings.ledger.default_sick_quota,
        LeaveType.PERSONAL: settings.ledger.default_personal_quota,
    }


def insert_for(dialect_name: str):
    if dialect_name == "postgresql":
        return postgresql.insert
    if dialect_name == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Upsert not supported for dialect {dialect_name}")


class PolicyStore(BaseService):

    def get(self, tenant_id: str):
        return self.db.execute(
            select(LeavePolicy).where(LeavePolicy.tenant_id == tenant_id)
        ).scalar_one_or_none()

    def get_or_create(self, tenant_id: str) -> LeavePolicy:
        """
        Return the tenant's policy, creating it with default quotas on first access.
        Concurrent first callers race on INSERT ... ON CONFLICT DO NOTHING, so exactly one row exists.
        """
        policy = self.get(tenant_id)
        if policy is not None:
            return policy

        values = {f"{t.value}_quota": days for t, days in default_quotas().items()}
        insert = insert_for(self.db.get_bind().dialect.name)
        stmt = insert(LeavePolicy).values(
            tenant_id=tenant_id,
            last_updated_at=utcnow(),
            updated_by="System",
            **values,
        ).on_conflict_do_nothing(index_elements=["tenant_id"])
        result = self.db.execute(stmt)
        if result.rowcount:
            self.log_info("Created default leave policy", tenant_id=tenant_id)
        return self.get(tenant_id)

    def update(self, tenant_id: str, quotas: Mapping[Any, Any], actor: str) -> LeavePolicy:
        """Validate then apply new quotas. Types absent from `quotas` keep their value."""
        cleaned = self.validate_quotas(quotas)

        policy = self.get_or_create(tenant_id)
        before = policy.quotas
        for leave_type, days in cleaned.items():
            policy.set_quota(leave_type, days)
        policy.last_updated_at = utcnow()
        policy.updated_by = actor
        self.db.flush()

        self.log_info(
            "Leave policy updated",
            tenant_id=tenant_id,
            actor=actor,
            before={t.value: d for t, d in before.items()},
            after={t.value: d for t, d in policy.quotas.items()},
        )
        return policy

    def quota_for(self, tenant_id: str, leave_type: LeaveType) -> int:
        return self.get_or_create(tenant_id).quota_for(leave_type)

    @staticmethod
    def validate_quotas(quotas: Mapping[Any, Any]) -> dict:
        if not quotas:
            raise ValidationError("At least one quota is required")

        cleaned = {}
        for key, value in quotas.items():
            try:
                leave_type = LeaveType(getattr(key, "value", key))
            except ValueError:
                raise ValidationError(f"Unknown leave type: {key}", details={"leave_type": str(key)})
            # bool is an int subclass; reject it along with floats and strings
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(
                    f"Quota for {leave_type.value} must be a whole number of days",
                    details={"leave_type": leave_type.value, "value": repr(value)},
                )
            if value < 0:
                raise ValidationError(
                    f"Quota for {leave_type.value} cannot be negative",
                    details={"leave_type": leave_type.value, "value": value},
                )
            cleaned[leave_type] = value
        return cleaned
