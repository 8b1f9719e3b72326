import threading

import pytest

from leave_ledger.core.exceptions import ConcurrencyConflictError
from leave_ledger.core.locks import KeyedLockRegistry, balance_key, request_key
from leave_ledger.models.leave_policy import LeaveType


def test_keys_normalize_enum_and_ids():
    assert balance_key("T", "E", LeaveType.SICK) == balance_key("T", "E", "sick")
    assert request_key("T", "12") == ("request", "T", 12)


def test_hold_is_reentrant_and_cleans_up():
    registry = KeyedLockRegistry(timeout=1)
    key = balance_key("T", "E", "annual")
    with registry.hold(key):
        with registry.hold(key, request_key("T", 1)):
            assert len(registry) == 2
    assert len(registry) == 0


def test_other_thread_times_out_while_key_is_held():
    registry = KeyedLockRegistry(timeout=0.1)
    key = balance_key("T", "E", "annual")
    errors = []

    def contender():
        try:
            with registry.hold(key):
                pass
        except ConcurrencyConflictError as e:
            errors.append(e)

    with registry.hold(key):
        t = threading.Thread(target=contender)
        t.start()
        t.join()

    assert len(errors) == 1
    assert errors[0].status_code == 409
    assert len(registry) == 0


def test_distinct_keys_do_not_block():
    registry = KeyedLockRegistry(timeout=0.1)
    done = threading.Event()

    def other():
        with registry.hold(balance_key("T", "E2", "annual")):
            done.set()

    with registry.hold(balance_key("T", "E1", "annual")):
        t = threading.Thread(target=other)
        t.start()
        t.join()

    assert done.is_set()


def test_failed_acquire_releases_earlier_keys():
    registry = KeyedLockRegistry(timeout=0.1)
    a, b = request_key("T", 1), request_key("T", 2)
    blocked = threading.Event()
    release = threading.Event()

    def holder():
        with registry.hold(b):
            blocked.set()
            release.wait(2)

    t = threading.Thread(target=holder)
    t.start()
    blocked.wait(2)
    try:
        with pytest.raises(ConcurrencyConflictError):
            with registry.hold(a, b):
                pass
        # a was released when b timed out
        with registry.hold(a):
            pass
    finally:
        release.set()
        t.join()
