"""Credential resolution and setup services."""

from .credential_resolver import CredentialResolver
from .credential_service import CredentialService
from .refresh_lock import RefreshLockManager

__all__ = ["CredentialResolver", "CredentialService", "RefreshLockManager"]
