"""
Per-project restore lock

Restore deletes and rewrites a project's graph, so two restores of the same
project must never overlap. The registry is process-local; deployments with
several worker processes need the database-level serialization of the
surrounding transaction as well.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

from ...utils.logging_security import sanitize_id_for_log
from .exceptions import RestoreInProgressError

logger = logging.getLogger(__name__)


class ProjectLockRegistry:
    """Non-blocking, per-project mutual exclusion"""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, project_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(project_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[project_id] = lock
            return lock

    def is_locked(self, project_id: str) -> bool:
        with self._guard:
            lock = self._locks.get(project_id)
        return bool(lock and lock.locked())

    @contextmanager
    def hold(self, project_id: str) -> Iterator[None]:
        """
        Hold the project's lock for the duration of the block.

        Raises:
            RestoreInProgressError: another holder is active for the project
        """
        lock = self._lock_for(project_id)
        if not lock.acquire(blocking=False):
            logger.warning(f"Rejected concurrent restore of project {sanitize_id_for_log(project_id)}")
            raise RestoreInProgressError(project_id)
        try:
            yield
        finally:
            lock.release()


restore_locks = ProjectLockRegistry()
