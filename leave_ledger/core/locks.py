"""
Per-key mutual exclusion for ledger and workflow writes.

Keys are tuples such as ("balance", tenant_id, employee_id, leave_type) or
("request", tenant_id, request_id). Locks are reentrant so a workflow that
already holds a balance key can call into LedgerService, which takes the
same key again. Entries are dropped once nobody holds or waits on them.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, List, Tuple

from leave_ledger.core.config import settings
from leave_ledger.core.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


class KeyedLockRegistry:
    def __init__(self, timeout: float = None):
        self._timeout = settings.ledger.lock_timeout_seconds if timeout is None else timeout
        self._mutex = threading.Lock()
        self._entries: Dict[Hashable, _Entry] = {}

    def _checkout(self, key: Hashable) -> _Entry:
        with self._mutex:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
            return entry

    def _checkin(self, key: Hashable, entry: _Entry) -> None:
        with self._mutex:
            entry.users -= 1
            if entry.users == 0:
                self._entries.pop(key, None)

    @contextmanager
    def hold(self, *keys: Hashable) -> Iterator[None]:
        """
        Acquire every key (sorted, duplicates removed) and release on exit.
        Raises ConcurrencyConflictError if a key cannot be taken in time.
        """
        ordered = sorted(set(keys), key=repr)
        acquired: List[Tuple[Hashable, _Entry]] = []
        try:
            for key in ordered:
                entry = self._checkout(key)
                if not entry.lock.acquire(timeout=self._timeout):
                    self._checkin(key, entry)
                    logger.warning("Lock wait timed out", extra={"lock_key": repr(key)})
                    raise ConcurrencyConflictError(f"Timed out waiting for {key[0]} lock")
                acquired.append((key, entry))
            yield
        finally:
            for key, entry in reversed(acquired):
                entry.lock.release()
                self._checkin(key, entry)

    def __len__(self) -> int:
        with self._mutex:
            return len(self._entries)


# Process-wide registry shared by every service instance.
lock_registry = KeyedLockRegistry()


def balance_key(tenant_id: str, employee_id: str, leave_type) -> tuple:
    return ("balance", tenant_id, employee_id, str(getattr(leave_type, "value", leave_type)))


def request_key(tenant_id: str, request_id: int) -> tuple:
    return ("request", tenant_id, int(request_id))
