"""
Setup-side operations on credential instances.

This is what the setup UI talks to: it lists connection definitions, turns
user input into encrypted instances, and manages their lifecycle. Plaintext
leaves this service only towards a definition's validate hook; callers get
instance metadata back, never values.
"""

import uuid
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional

from ..config import get_config
from ..connections.definition import ConnectionDefinition
from ..connections.registry import ConnectionRegistry
from ..context.tenant_context import tenant_aware
from ..enums import AuthErrorReason, CredentialStatus
from ..exceptions import AuthError, ConflictError, CredentialUnusableError
from ..schemas.credential_schemas import (
    ConnectionDefinitionMetadata,
    CredentialInstance,
    CredentialInstanceRead,
)
from ..store.credential_store import CredentialStore
from ..utils.encryption_utils import CredentialCipher
from ..utils.hook_runner import HookRunner
from ..utils.logger import get_logger
from ..utils.time_utils import ensure_aware, utc_now

MAX_REVOKE_ATTEMPTS = 5


class CredentialService:
    """
    Service for managing credential instances.

    This service provides:
    - Schema validation of user input before anything is stored
    - Optional live verification through the definition's validate hook
    - Revocation, re-authentication and live re-validation
    - Tenant-scoped listing of instance metadata
    """

    def __init__(
        self,
        store: CredentialStore,
        registry: ConnectionRegistry,
        cipher: CredentialCipher,
        hook_runner: Optional[HookRunner] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.registry = registry
        self.cipher = cipher
        resolver_config = get_config().resolver
        self.hook_runner = hook_runner or HookRunner(
            max_workers=resolver_config.hook_workers,
            default_timeout=resolver_config.hook_timeout_seconds,
        )
        self.clock = clock
        self.logger = get_logger()

    def close(self) -> None:
        self.hook_runner.shutdown(wait=False)

    def list_definitions(self) -> List[ConnectionDefinitionMetadata]:
        """Definitions the user can connect with, in registration order."""
        return self.registry.list_definitions()

    @tenant_aware
    def create_instance(
        self,
        tenant_id: str,
        definition_id: str,
        raw_field_values: Mapping[str, str],
        expires_at: Optional[datetime] = None,
        verify: bool = False,
    ) -> CredentialInstanceRead:
        """
        Validate user input and store it as a new active instance.

        Args:
            tenant_id: Tenant connecting the service
            definition_id: Connection definition the input is for
            raw_field_values: Field name to user-entered value
            expires_at: Known expiry of the supplied credential, if any
            verify: Call the definition's validate hook before storing

        Returns:
            Metadata of the stored instance

        Raises:
            ConnectionDefinitionNotFoundError: Unknown definition id
            ValidationError: Input fails the schema (all violations attached)
            AuthError: ``verify`` was set and the service rejected the credential
        """
        definition = self.registry.get(definition_id)
        values = definition.schema.validate_or_raise(raw_field_values)

        if verify:
            self._verify(definition, values)

        now = self.clock()
        instance = CredentialInstance(
            tenant_id=tenant_id,
            connection_definition_id=definition.id,
            definition_version=definition.version,
            instance_id=str(uuid.uuid4()),
            values=self.cipher.encrypt_values(tenant_id, definition.id, values),
            status=CredentialStatus.ACTIVE,
            created_at=now,
            updated_at=now,
            expires_at=ensure_aware(expires_at) or definition.expiry_policy.initial_expiry(now),
        )
        values.clear()

        stored = self.store.put(instance)
        self.logger.info(
            "Credential instance created",
            extra={
                "instance_id": stored.instance_id,
                "connection_definition_id": definition.id,
                "definition_version": definition.version,
                "field_names": sorted(stored.values.keys()),
                "expires_at": stored.expires_at.isoformat() if stored.expires_at else None,
            },
        )
        return CredentialInstanceRead.from_instance(stored)

    @tenant_aware
    def get_instance(self, tenant_id: str, instance_id: str) -> CredentialInstanceRead:
        return CredentialInstanceRead.from_instance(self.store.get(tenant_id, instance_id))

    @tenant_aware
    def list_instances(
        self, tenant_id: str, definition_id: Optional[str] = None
    ) -> List[CredentialInstanceRead]:
        return [
            CredentialInstanceRead.from_instance(instance)
            for instance in self.store.list_for_tenant(tenant_id, definition_id)
        ]

    @tenant_aware
    def revoke_instance(self, tenant_id: str, instance_id: str) -> CredentialInstanceRead:
        """
        Revoke an instance and drop its encrypted values.

        Revocation retries on concurrent writes so that it always wins over an
        in-flight refresh. Revoking twice is a no-op.
        """
        for attempt in range(1, MAX_REVOKE_ATTEMPTS + 1):
            instance = self.store.get(tenant_id, instance_id)
            if instance.status is CredentialStatus.REVOKED:
                return CredentialInstanceRead.from_instance(instance)
            try:
                stored = self.store.put(
                    instance.model_copy(update={"status": CredentialStatus.REVOKED, "values": {}})
                )
            except ConflictError:
                if attempt == MAX_REVOKE_ATTEMPTS:
                    raise
                continue

            self.logger.info(
                "Credential instance revoked",
                extra={"instance_id": instance_id, "previous_status": instance.status.value},
            )
            return CredentialInstanceRead.from_instance(stored)

    @tenant_aware
    def validate_instance(self, tenant_id: str, instance_id: str) -> CredentialInstanceRead:
        """
        Re-check a stored credential against the live service.

        A rejected credential is marked invalid. Network or unknown failures
        leave the status alone. Both raise the hook's AuthError. Definitions
        without a validate hook return the instance unchanged.

        Raises:
            CredentialUnusableError: The instance is revoked or already invalid
            AuthError: The live check failed
        """
        instance = self.store.get(tenant_id, instance_id)
        if instance.status.is_terminal:
            raise CredentialUnusableError(
                f"Credential instance is {instance.status.value}; reconnect required",
                reason=instance.status.value,
                tenant_id=tenant_id,
                instance_id=instance_id,
            )

        definition = self.registry.get(instance.connection_definition_id)
        if definition.validate_hook is None:
            self.logger.debug(
                "Connection definition has no validate hook",
                extra={"connection_definition_id": definition.id},
            )
            return CredentialInstanceRead.from_instance(instance)

        values = self.cipher.decrypt_values(tenant_id, definition.id, instance.values)
        try:
            self._verify(definition, values)
        except AuthError as e:
            if e.reason is AuthErrorReason.INVALID_CREDENTIAL:
                self._mark_invalid(instance)
            raise
        finally:
            values.clear()

        return CredentialInstanceRead.from_instance(instance)

    @tenant_aware
    def reauthenticate(
        self,
        tenant_id: str,
        instance_id: str,
        raw_field_values: Mapping[str, str],
        expires_at: Optional[datetime] = None,
        verify: bool = False,
    ) -> CredentialInstanceRead:
        """
        Replace an instance's values with freshly entered ones under the same id.

        The instance moves to the currently registered definition version and
        becomes active again. Revoked instances stay revoked.

        Raises:
            CredentialUnusableError: The instance was revoked
            ValidationError: Input fails the schema
            ConflictError: The instance changed while it was being replaced
        """
        instance = self.store.get(tenant_id, instance_id)
        if instance.status is CredentialStatus.REVOKED:
            raise CredentialUnusableError(
                "Revoked credential instances cannot be re-authenticated",
                reason=CredentialStatus.REVOKED.value,
                tenant_id=tenant_id,
                instance_id=instance_id,
            )

        definition = self.registry.get(instance.connection_definition_id)
        values = definition.schema.validate_or_raise(raw_field_values)
        if verify:
            self._verify(definition, values)

        now = self.clock()
        replaced = instance.model_copy(
            update={
                "values": self.cipher.encrypt_values(tenant_id, definition.id, values),
                "definition_version": definition.version,
                "status": CredentialStatus.ACTIVE,
                "expires_at": ensure_aware(expires_at) or definition.expiry_policy.initial_expiry(now),
            }
        )
        values.clear()

        stored = self.store.put(replaced)
        self.logger.info(
            "Credential instance re-authenticated",
            extra={
                "instance_id": instance_id,
                "previous_status": instance.status.value,
                "definition_version": definition.version,
            },
        )
        return CredentialInstanceRead.from_instance(stored)

    def _mark_invalid(self, instance: CredentialInstance) -> None:
        """Record a failed live validation; a concurrent write keeps its own status."""
        try:
            self.store.put(instance.model_copy(update={"status": CredentialStatus.INVALID}))
        except ConflictError:
            self.logger.warning(
                "Invalid status lost to a concurrent write",
                extra={"instance_id": instance.instance_id},
            )
            return
        self.logger.info(
            "Credential instance marked invalid after validation",
            extra={
                "instance_id": instance.instance_id,
                "connection_definition_id": instance.connection_definition_id,
            },
        )

    def _verify(self, definition: ConnectionDefinition, values: Dict[str, str]) -> None:
        if definition.validate_hook is None:
            return
        self.hook_runner.run(
            definition.validate_hook,
            values,
            hook_name="validate",
            connection_definition_id=definition.id,
        )
