"""
In-process mutual exclusion keyed by slot id.

Used around every operation that reads a slot's status and then writes it,
so two requests touching the same slot run one after the other inside this
process. Locks are taken in ascending id order to avoid deadlock between
operations that need the same pair of slots.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from .config import SLOT_LOCKS_ENABLED

logger = logging.getLogger(__name__)


class SlotLockTable:
    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._guard = threading.Lock()
        # slot_id -> [lock, number of holders and waiters]
        self._locks: dict[int, list] = {}

    def _checkout(self, slot_id: int) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(slot_id)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[slot_id] = entry
            entry[1] += 1
            return entry[0]

    def _checkin(self, slot_id: int) -> None:
        with self._guard:
            entry = self._locks[slot_id]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[slot_id]

    @contextmanager
    def hold(self, *slot_ids: Optional[int]) -> Iterator[None]:
        """Hold the locks for all given slot ids (None entries are ignored)"""
        if not self.enabled:
            yield
            return

        ordered = sorted({slot_id for slot_id in slot_ids if slot_id is not None})
        acquired: list[tuple[int, threading.Lock]] = []
        try:
            for slot_id in ordered:
                lock = self._checkout(slot_id)
                try:
                    lock.acquire()
                except BaseException:
                    self._checkin(slot_id)
                    raise
                acquired.append((slot_id, lock))
            yield
        finally:
            for slot_id, lock in reversed(acquired):
                lock.release()
                self._checkin(slot_id)

    def active_count(self) -> int:
        with self._guard:
            return len(self._locks)


slot_locks = SlotLockTable(enabled=SLOT_LOCKS_ENABLED)
