"""
Per-instance refresh locks with leases.

A lease bounds how long a holder can block others: once it runs out, the next
waiter takes the lock over. The stale holder's ``release`` then does nothing,
and its late write is rejected by the store's version check.
"""

import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Hashable, Iterator, Optional

from ..utils.logger import get_logger


@dataclass
class _Lease:
    token: str
    expires_at: float


class RefreshLockManager:
    """Mutual exclusion keyed by (tenant_id, instance_id)."""

    def __init__(self, lease_seconds: float = 30.0):
        self.lease_seconds = lease_seconds
        self._leases: Dict[Hashable, _Lease] = {}
        self._condition = threading.Condition()
        self.logger = get_logger()

    def acquire(self, key: Hashable, timeout: Optional[float] = None) -> Optional[str]:
        """
        Wait for the lock on ``key``.

        Returns:
            A lease token, or None if ``timeout`` elapsed first
        """
        deadline = None if timeout is None else time.monotonic() + max(timeout, 0.0)

        with self._condition:
            while True:
                now = time.monotonic()
                lease = self._leases.get(key)

                if lease is not None and lease.expires_at <= now:
                    self.logger.warning("Refresh lock lease expired; taking over", extra={"lock_key": str(key)})
                    lease = None

                if lease is None:
                    token = uuid.uuid4().hex
                    self._leases[key] = _Lease(token=token, expires_at=now + self.lease_seconds)
                    return token

                wait_until = lease.expires_at if deadline is None else min(lease.expires_at, deadline)
                if deadline is not None and now >= deadline:
                    return None
                self._condition.wait(timeout=max(wait_until - now, 0.0))

    def release(self, key: Hashable, token: str) -> bool:
        """
        Give the lock back.

        Returns:
            False when the lease had already been taken over
        """
        with self._condition:
            lease = self._leases.get(key)
            if lease is None or lease.token != token:
                return False
            del self._leases[key]
            self._condition.notify_all()
            return True

    def is_held(self, key: Hashable) -> bool:
        with self._condition:
            lease = self._leases.get(key)
            return lease is not None and lease.expires_at > time.monotonic()

    @contextmanager
    def hold(self, key: Hashable, timeout: Optional[float] = None) -> Iterator[Optional[str]]:
        """Acquire around a block; yields None when the wait timed out."""
        token = self.acquire(key, timeout)
        try:
            yield token
        finally:
            if token is not None:
                self.release(key, token)
