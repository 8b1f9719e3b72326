import pytest
from sqlalchemy import func, select

from leave_ledger.core.exceptions import ValidationError
from leave_ledger.models.leave_balance import LeaveBalance
from leave_ledger.models.leave_policy import LeavePolicy, LeaveType
from leave_ledger.services.policy_store import PolicyStore

from conftest import TENANT, OTHER_TENANT


def _policy_count(db_session, tenant_id):
    return db_session.execute(
        select(func.count(LeavePolicy.id)).where(LeavePolicy.tenant_id == tenant_id)
    ).scalar_one()


def test_get_or_create_seeds_defaults_once(db_session):
    """First access creates 6/6/6; later calls return the same row."""
    store = PolicyStore(db_session)
    first = store.get_or_create(TENANT)
    db_session.commit()
    second = store.get_or_create(TENANT)

    assert first.id == second.id
    assert first.quotas == {LeaveType.ANNUAL: 6, LeaveType.SICK: 6, LeaveType.PERSONAL: 6}
    assert first.updated_by == "System"
    assert _policy_count(db_session, TENANT) == 1


def test_get_or_create_from_two_sessions_keeps_one_row(session_factory):
    a, b = session_factory(), session_factory()
    try:
        PolicyStore(a).get_or_create(TENANT)
        a.commit()
        PolicyStore(b).get_or_create(TENANT)
        b.commit()
        assert _policy_count(a, TENANT) == 1
    finally:
        a.close()
        b.close()


def test_update_changes_only_given_types(db_session):
    store = PolicyStore(db_session)
    policy = store.update(TENANT, {"annual": 10}, actor="HR001")
    db_session.commit()

    assert policy.quota_for(LeaveType.ANNUAL) == 10
    assert policy.quota_for(LeaveType.SICK) == 6
    assert policy.updated_by == "HR001"
    assert store.quota_for(TENANT, "annual") == 10


def test_update_accepts_enum_keys(db_session):
    policy = PolicyStore(db_session).update(TENANT, {LeaveType.SICK: 0}, actor="HR001")
    assert policy.quota_for(LeaveType.SICK) == 0


def test_update_moves_last_updated_at(db_session):
    store = PolicyStore(db_session)
    created = store.get_or_create(TENANT)
    db_session.commit()
    before = created.last_updated_at

    updated = store.update(TENANT, {"personal": 3}, actor="HR001")
    db_session.commit()
    assert updated.last_updated_at > before


@pytest.mark.parametrize("quotas", [
    {"annual": -1},
    {"vacation": 3},
    {"sick": 2.5},
    {"personal": "4"},
    {"annual": True},
    {},
])
def test_update_rejects_bad_quotas(db_session, quotas):
    store = PolicyStore(db_session)
    with pytest.raises(ValidationError):
        store.update(TENANT, quotas, actor="HR001")


def test_rejected_update_writes_nothing(db_session):
    store = PolicyStore(db_session)
    store.get_or_create(TENANT)
    db_session.commit()

    with pytest.raises(ValidationError):
        store.update(TENANT, {"annual": 2, "sick": -5}, actor="HR001")
    db_session.rollback()

    assert store.get(TENANT).quota_for(LeaveType.ANNUAL) == 6


def test_update_does_not_touch_balances(db_session, ledger):
    ledger.get_balances(TENANT, "EMP001")
    PolicyStore(db_session).update(TENANT, {"annual": 2}, actor="HR001")
    db_session.commit()

    row = db_session.execute(
        select(LeaveBalance).where(
            LeaveBalance.employee_id == "EMP001", LeaveBalance.leave_type == "annual"
        )
    ).scalar_one()
    assert row.remaining_days == 6


def test_tenants_are_isolated(db_session):
    store = PolicyStore(db_session)
    store.update(TENANT, {"annual": 12}, actor="HR001")
    other = store.get_or_create(OTHER_TENANT)
    db_session.commit()

    assert other.quota_for(LeaveType.ANNUAL) == 6
    assert store.get(TENANT).quota_for(LeaveType.ANNUAL) == 12
