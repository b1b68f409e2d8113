"""Credential stores."""

from .credential_store import CredentialStore
from .memory_store import InMemoryCredentialStore
from .sql_store import SqlCredentialStore

__all__ = ["CredentialStore", "InMemoryCredentialStore", "SqlCredentialStore"]
