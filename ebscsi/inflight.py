"""Tracking of requests that are currently being processed."""

from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)

VOLUME_OPERATION_ALREADY_EXISTS_ERROR_MSG = "An operation with the given Volume %s already exists"


class InFlight:
    """A thread-safe set of keys for operations that are in progress."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._keys: set[str] = set()

    def insert(self, key: str) -> bool:
        """Record ``key`` as in flight; return False if it already was."""
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def delete(self, key: str) -> None:
        """Forget ``key``; does nothing if it is not in flight."""
        with self._lock:
            self._keys.discard(key)
        logger.debug("Node Service: volume=%r operation finished", key)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._keys