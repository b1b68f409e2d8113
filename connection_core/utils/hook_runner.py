"""
Bounded execution of connection validate/refresh hooks.

Hooks are third-party network calls written by integration authors. They run
on a small worker pool so the caller can stop waiting after a deadline; an
abandoned call keeps its worker until it returns, but nothing waits on it.
"""

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Mapping, Optional

from ..enums import AuthErrorReason
from ..exceptions import AuthError
from .logger import get_logger


class HookRunner:
    """Runs hooks with a timeout and normalizes their failures into AuthError."""

    def __init__(self, max_workers: int = 8, default_timeout: float = 10.0):
        self.default_timeout = default_timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="connection-hook"
        )
        self.logger = get_logger()

    def run(
        self,
        hook: Callable[[Mapping[str, str]], Any],
        values: Mapping[str, str],
        hook_name: str,
        connection_definition_id: str,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Call ``hook(values)`` and wait at most ``timeout`` seconds.

        Returns:
            Whatever the hook returns

        Raises:
            AuthError: NETWORK on timeout, the hook's own AuthError unchanged,
                UNKNOWN for any other exception
        """
        effective_timeout = self.default_timeout if timeout is None else max(timeout, 0.0)
        future = self._executor.submit(hook, dict(values))

        try:
            return future.result(timeout=effective_timeout)
        except FutureTimeoutError as e:
            future.cancel()
            self.logger.warning(
                "Connection hook timed out",
                extra={
                    "hook": hook_name,
                    "connection_definition_id": connection_definition_id,
                    "timeout_seconds": effective_timeout,
                },
            )
            raise AuthError(
                f"{hook_name} for '{connection_definition_id}' timed out after {effective_timeout}s",
                reason=AuthErrorReason.NETWORK,
                hook=hook_name,
                connection_definition_id=connection_definition_id,
                timed_out=True,
                cause=e,
            ) from e
        except AuthError:
            raise
        except Exception as e:
            raise AuthError(
                f"{hook_name} for '{connection_definition_id}' failed unexpectedly",
                reason=AuthErrorReason.UNKNOWN,
                hook=hook_name,
                connection_definition_id=connection_definition_id,
                error_type=type(e).__name__,
                cause=e,
            ) from e

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=True)
