"""
Single-flight guard for sync runs.

The lock is in-process: it serialises every caller in one worker process
(HTTP requests and the scheduler alike). Deployments running several
processes or hosts need a shared lock store instead, such as a Redis key
with a TTL or a Postgres advisory lock.
"""

import threading
from contextlib import contextmanager
from typing import Iterator

from jobtrack.core.errors import SyncConflictError
from jobtrack.core.logging import get_logger

log = get_logger(__name__)


class SingleFlight:
    """Non-blocking mutual exclusion: a second caller fails fast instead of waiting."""

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self) -> Iterator[None]:
        """
        Hold the guard for the duration of the block.

        Raises:
            SyncConflictError: Another holder is active
        """
        if not self._lock.acquire(blocking=False):
            log.warning("single_flight_conflict", name=self.name)
            raise SyncConflictError(f"{self.name} already in progress")
        try:
            yield
        finally:
            self._lock.release()


# Shared by every sync entry point in this process
sync_guard = SingleFlight("sync")
