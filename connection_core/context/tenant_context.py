"""
Tenant context management for the connection core.

Credentials never cross tenant boundaries. Every store, service and resolver
operation runs inside the context of the tenant it acts on, which also tags
log records with ``tenant_id``.
"""

import threading
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Generator, Optional, Union

from ..exceptions import ErrorCode, TenantIsolationError, ValidationError
from ..utils.logger import get_logger


class TenantContext:
    """
    Manages tenant context throughout the application using thread-local storage.
    """

    _thread_local = threading.local()

    @classmethod
    def set_current_tenant(cls, tenant_id: str) -> None:
        """
        Set the current tenant ID for the execution context.

        Args:
            tenant_id: ID of the tenant

        Raises:
            ValidationError: If tenant_id is empty or invalid
        """
        if not tenant_id or not isinstance(tenant_id, str) or not tenant_id.strip():
            raise ValidationError(
                "tenant_id must be a non-empty string",
                error_code=ErrorCode.MISSING_REQUIRED,
                field="tenant_id",
            )

        cls._thread_local.tenant_id = tenant_id.strip()
        get_logger().debug(f"Current tenant set to: {tenant_id}")

    @classmethod
    def get_current_tenant_id(cls) -> Optional[str]:
        """
        Get the current tenant ID from the execution context.

        Returns:
            Current tenant ID or None if not set
        """
        return getattr(cls._thread_local, "tenant_id", None)

    @classmethod
    def clear_current_tenant(cls) -> None:
        """
        Clear the current tenant ID from the execution context.
        """
        if hasattr(cls._thread_local, "tenant_id"):
            delattr(cls._thread_local, "tenant_id")

    @classmethod
    def check_access(cls, tenant_id: str) -> None:
        """
        Refuse to touch ``tenant_id``'s credentials from another tenant's context.

        Calls made outside any tenant context are allowed.

        Raises:
            TenantIsolationError: If a different tenant is active
        """
        current = cls.get_current_tenant_id()
        if current and current != tenant_id:
            raise TenantIsolationError(requested_tenant_id=tenant_id, active_tenant_id=current)


@contextmanager
def tenant_context(tenant_id: str) -> Generator[None, None, None]:
    """
    Context manager for tenant operations.

    Sets the current tenant for the duration of the context and restores the
    previous one afterward.

    Args:
        tenant_id: ID of the tenant

    Yields:
        None
    """
    previous_tenant = TenantContext.get_current_tenant_id()
    TenantContext.set_current_tenant(tenant_id)
    try:
        yield
    finally:
        if previous_tenant:
            TenantContext.set_current_tenant(previous_tenant)
        else:
            TenantContext.clear_current_tenant()


def tenant_aware(tenant_id: Union[Optional[str], Callable] = None):
    """
    Parameterized decorator to make a method tenant-aware.

    The tenant is taken, in order, from the decorator argument, from a
    ``tenant_id`` argument of the decorated call (keyword, or the first
    positional argument after ``self``), or from the current context.
    Unlike a plain context lookup, the call keeps its ``tenant_id`` argument.

    Args:
        tenant_id: Optional tenant ID to use

    Returns:
        Decorator function
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            effective_tenant_id = tenant_id

            if not effective_tenant_id:
                effective_tenant_id = kwargs.get("tenant_id")
            if not effective_tenant_id and len(args) > 1 and isinstance(args[1], str):
                effective_tenant_id = args[1]
            if not effective_tenant_id:
                effective_tenant_id = TenantContext.get_current_tenant_id()

            if effective_tenant_id and isinstance(effective_tenant_id, str):
                with tenant_context(effective_tenant_id):
                    return func(*args, **kwargs)

            raise ValidationError(
                "No tenant ID provided for tenant-aware function",
                error_code=ErrorCode.MISSING_REQUIRED,
                field="tenant_id",
            )

        return wrapper

    # Handle usage as @tenant_aware (without args)
    if callable(tenant_id):
        func = tenant_id
        tenant_id = None
        return decorator(func)

    return decorator
