"""
Connection definitions and credential resolution for workflow actions.
"""

from .connections import (
    ConnectionDefinition,
    ConnectionRegistry,
    create_api_key_connection,
    create_basic_auth_connection,
    create_custom_connection,
    create_oauth2_connection,
)
from .services import CredentialResolver, CredentialService
from .store import CredentialStore, InMemoryCredentialStore, SqlCredentialStore
from .utils.encryption_utils import CredentialCipher

__all__ = [
    "ConnectionDefinition",
    "ConnectionRegistry",
    "CredentialCipher",
    "CredentialResolver",
    "CredentialService",
    "CredentialStore",
    "InMemoryCredentialStore",
    "SqlCredentialStore",
    "create_api_key_connection",
    "create_basic_auth_connection",
    "create_custom_connection",
    "create_oauth2_connection",
]
