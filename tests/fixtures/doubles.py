"""Test doubles and well-known ids shared by the test suites."""

import threading
import time
from datetime import datetime, timedelta
from typing import Optional

from connection_core.schemas import RefreshResult
from connection_core.utils.time_utils import utc_now

API_KEY_DEFINITION_ID = "acme_connection_api-key"
OAUTH_DEFINITION_ID = "acme_connection_oauth2"
SESSION_DEFINITION_ID = "acme_connection_session"
REPORTED_DEFINITION_ID = "acme_connection_reported"


class RefreshRecorder:
    """Thread-safe fake refresh hook that counts its calls."""

    def __init__(self):
        self.calls = 0
        self.seen_values = []
        self.error: Optional[Exception] = None
        self.delay = 0.0
        self.expires_in: Optional[int] = 3600
        self._lock = threading.Lock()

    def __call__(self, values):
        with self._lock:
            self.calls += 1
            call_number = self.calls
            self.seen_values.append(dict(values))
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return RefreshResult(values={"accessToken": f"access-{call_number}"}, expires_in=self.expires_in)


class MutableClock:
    """Clock the resolver and service can share; tests move it forward."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or utc_now()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)
