"""
Credential store interface.

A store persists CredentialInstance objects whose ``values`` are already
encrypted; it never sees plaintext. Writes are compare-and-swap on the
instance ``version`` counter.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..schemas.credential_schemas import CredentialInstance


class CredentialStore(ABC):
    """Persistence for credential instances keyed by (tenant_id, instance_id)."""

    @abstractmethod
    def get(self, tenant_id: str, instance_id: str) -> CredentialInstance:
        """
        Raises:
            CredentialNotFoundError: If the tenant has no such instance
        """

    @abstractmethod
    def put(self, instance: CredentialInstance) -> CredentialInstance:
        """
        Write ``instance`` if the stored version still equals ``instance.version``.

        A version of 0 means "create"; it fails when the key already exists.

        Returns:
            The stored copy, with ``version`` incremented and ``updated_at`` set

        Raises:
            ConflictError: If another writer got there first
        """

    @abstractmethod
    def delete(self, tenant_id: str, instance_id: str) -> None:
        """Remove the instance; deleting a missing instance is not an error."""

    @abstractmethod
    def list_for_tenant(
        self, tenant_id: str, connection_definition_id: Optional[str] = None
    ) -> List[CredentialInstance]:
        """Instances of one tenant, oldest first."""
