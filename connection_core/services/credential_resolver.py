"""
Credential resolution for action executions.

The execution engine calls ``resolve_credential`` for every action run. The
resolver reloads the instance from the store (there is no plaintext cache),
refuses terminal instances, refreshes fixed-ttl credentials that are inside
the safety margin, and hands back a ResolvedCredential the caller wipes when
the run ends.

Refreshes for one instance are serialized by a leased lock. Whoever gets the
lock re-reads the instance first and skips the refresh when another resolver
already did it.
"""

import time
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Iterator, Optional

from ..config import ResolverConfig, get_config
from ..connections.definition import ConnectionDefinition
from ..connections.registry import ConnectionRegistry
from ..context.tenant_context import tenant_context
from ..enums import AuthErrorReason, CredentialStatus, ExpiryPolicyKind
from ..exceptions import (
    AuthError,
    ConflictError,
    ConnectionDefinitionNotFoundError,
    CredentialUnusableError,
    RefreshTransientError,
)
from ..schemas.credential_schemas import CredentialInstance, RefreshResult, ResolvedCredential
from ..store.credential_store import CredentialStore
from ..utils.encryption_utils import CredentialCipher
from ..utils.hook_runner import HookRunner
from ..utils.logger import get_logger
from ..utils.time_utils import utc_now
from .refresh_lock import RefreshLockManager


class CredentialResolver:
    """Turns stored instances into short-lived plaintext credentials."""

    def __init__(
        self,
        store: CredentialStore,
        registry: ConnectionRegistry,
        cipher: CredentialCipher,
        config: Optional[ResolverConfig] = None,
        hook_runner: Optional[HookRunner] = None,
        lock_manager: Optional[RefreshLockManager] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.registry = registry
        self.cipher = cipher
        self.config = config or get_config().resolver
        self.hook_runner = hook_runner or HookRunner(
            max_workers=self.config.hook_workers,
            default_timeout=self.config.hook_timeout_seconds,
        )
        self.lock_manager = lock_manager or RefreshLockManager(
            lease_seconds=self.config.lock_lease_seconds
        )
        self.clock = clock
        self.logger = get_logger()

    # ==================== PUBLIC API ====================

    def resolve_credential(
        self, tenant_id: str, instance_id: str, timeout: Optional[float] = None
    ) -> ResolvedCredential:
        """
        Load, refresh if due, and decrypt one credential instance.

        Args:
            tenant_id: Tenant owning the instance
            instance_id: Instance to resolve
            timeout: Upper bound in seconds on lock waiting and the refresh call

        Returns:
            Plaintext credential for a single execution

        Raises:
            CredentialNotFoundError: The tenant has no such instance
            CredentialUnusableError: Revoked, invalid, expired without refresh,
                unknown definition, or undecryptable; the user must reconnect
            RefreshTransientError: Refresh failed for a reason that may pass
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        with tenant_context(tenant_id):
            instance = self.store.get(tenant_id, instance_id)
            self._ensure_usable(instance)
            definition = self._definition_for(instance)

            if self._needs_refresh(instance, definition):
                instance = self._refresh_due(instance, definition, deadline)

            return self._decrypt(instance)

    @contextmanager
    def resolved(
        self, tenant_id: str, instance_id: str, timeout: Optional[float] = None
    ) -> Iterator[ResolvedCredential]:
        """Resolve for the duration of a block; values are wiped on exit."""
        credential = self.resolve_credential(tenant_id, instance_id, timeout=timeout)
        try:
            yield credential
        finally:
            credential.wipe()

    def refresh_after_auth_failure(
        self,
        tenant_id: str,
        instance_id: str,
        resolved_version: int,
        timeout: Optional[float] = None,
    ) -> ResolvedCredential:
        """
        Refresh because the third-party service rejected a credential in use.

        Several executions may report the same rejection. Only the first one
        whose ``resolved_version`` still matches the store triggers a refresh;
        the others get the already refreshed credential.

        Args:
            tenant_id: Tenant owning the instance
            instance_id: Instance whose credential was rejected
            resolved_version: ``version`` of the ResolvedCredential that failed
            timeout: Upper bound in seconds on lock waiting and the refresh call

        Raises:
            CredentialUnusableError: If the instance cannot be refreshed
            RefreshTransientError: If the refresh failed transiently
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        with tenant_context(tenant_id):
            instance = self.store.get(tenant_id, instance_id)
            self._ensure_usable(instance)
            definition = self._definition_for(instance)

            if instance.version != resolved_version:
                return self._decrypt(instance)

            if definition.refresh_hook is None:
                # Rejected and nothing to refresh with
                self._persist_status(instance, CredentialStatus.INVALID)
                raise CredentialUnusableError(
                    "Credential was rejected and its connection cannot refresh",
                    reason=AuthErrorReason.INVALID_CREDENTIAL.value,
                    tenant_id=tenant_id,
                    instance_id=instance_id,
                    connection_definition_id=definition.id,
                )

            refreshed = self._locked_refresh(
                instance,
                definition,
                deadline,
                still_needed=lambda current: current.version == resolved_version,
            )
            return self._decrypt(refreshed)

    def close(self) -> None:
        self.hook_runner.shutdown(wait=False)

    # ==================== CHECKS ====================

    def _ensure_usable(self, instance: CredentialInstance) -> None:
        if instance.status.is_terminal:
            raise CredentialUnusableError(
                f"Credential instance is {instance.status.value}; reconnect required",
                reason=instance.status.value,
                tenant_id=instance.tenant_id,
                instance_id=instance.instance_id,
                connection_definition_id=instance.connection_definition_id,
            )

    def _definition_for(self, instance: CredentialInstance) -> ConnectionDefinition:
        try:
            return self.registry.get(instance.connection_definition_id)
        except ConnectionDefinitionNotFoundError as e:
            raise CredentialUnusableError(
                f"Connection definition '{instance.connection_definition_id}' is not registered",
                reason="definition-missing",
                tenant_id=instance.tenant_id,
                instance_id=instance.instance_id,
                connection_definition_id=instance.connection_definition_id,
                cause=e,
            ) from e

    def _safety_margin(self, definition: ConnectionDefinition) -> timedelta:
        margin = definition.expiry_policy.safety_margin_seconds
        if margin is None:
            margin = self.config.safety_margin_seconds
            ttl = definition.expiry_policy.ttl_seconds
            if ttl is not None:
                # A fresh credential must not already be due
                margin = min(margin, ttl // 2)
        return timedelta(seconds=margin)

    def _needs_refresh(self, instance: CredentialInstance, definition: ConnectionDefinition) -> bool:
        if definition.expiry_policy.kind is not ExpiryPolicyKind.FIXED_TTL:
            return False
        if instance.status is CredentialStatus.EXPIRED:
            return True
        if instance.expires_at is None:
            return False
        return self.clock() >= instance.expires_at - self._safety_margin(definition)

    @staticmethod
    def _remaining(deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return max(deadline - time.monotonic(), 0.0)

    # ==================== REFRESH ====================

    def _refresh_due(
        self,
        instance: CredentialInstance,
        definition: ConnectionDefinition,
        deadline: Optional[float],
    ) -> CredentialInstance:
        if definition.refresh_hook is None:
            if instance.status is CredentialStatus.ACTIVE and not instance.is_past_expiry(self.clock()):
                return instance
            if instance.status is not CredentialStatus.EXPIRED:
                self._persist_status(instance, CredentialStatus.EXPIRED)
            raise CredentialUnusableError(
                "Credential expired and its connection cannot refresh",
                reason="expired",
                tenant_id=instance.tenant_id,
                instance_id=instance.instance_id,
                connection_definition_id=definition.id,
                expires_at=instance.expires_at.isoformat() if instance.expires_at else None,
            )

        return self._locked_refresh(
            instance,
            definition,
            deadline,
            still_needed=lambda current: (
                current.version == instance.version and self._needs_refresh(current, definition)
            ),
        )

    def _locked_refresh(
        self,
        instance: CredentialInstance,
        definition: ConnectionDefinition,
        deadline: Optional[float],
        still_needed: Callable[[CredentialInstance], bool],
    ) -> CredentialInstance:
        remaining = self._remaining(deadline)
        lock_timeout = self.config.lock_wait_seconds if remaining is None else remaining
        token = self.lock_manager.acquire(instance.key, timeout=lock_timeout)
        if token is None:
            raise RefreshTransientError(
                "Timed out waiting for the refresh lock",
                reason="timeout",
                tenant_id=instance.tenant_id,
                instance_id=instance.instance_id,
            )

        try:
            current = self.store.get(instance.tenant_id, instance.instance_id)
            self._ensure_usable(current)
            if not still_needed(current):
                self.logger.debug(
                    "Credential already refreshed by another resolver",
                    extra={"instance_id": current.instance_id, "version": current.version},
                )
                return current
            return self._run_refresh(current, definition, deadline)
        finally:
            self.lock_manager.release(instance.key, token)

    def _run_refresh(
        self,
        instance: CredentialInstance,
        definition: ConnectionDefinition,
        deadline: Optional[float],
    ) -> CredentialInstance:
        remaining = self._remaining(deadline)
        if remaining is not None and remaining <= 0:
            raise RefreshTransientError(
                "No time left to refresh the credential",
                reason="timeout",
                tenant_id=instance.tenant_id,
                instance_id=instance.instance_id,
            )
        hook_timeout = float(self.config.hook_timeout_seconds)
        if remaining is not None:
            hook_timeout = min(hook_timeout, remaining)

        self.logger.info(
            "Refreshing credential",
            extra={
                "instance_id": instance.instance_id,
                "connection_definition_id": definition.id,
                "version": instance.version,
                "expires_at": instance.expires_at.isoformat() if instance.expires_at else None,
            },
        )

        plaintext = self.cipher.decrypt_values(
            instance.tenant_id, instance.connection_definition_id, instance.values
        )
        try:
            result = self.hook_runner.run(
                definition.refresh_hook,
                plaintext,
                hook_name="refresh",
                connection_definition_id=definition.id,
                timeout=hook_timeout,
            )
        except AuthError as e:
            self._handle_refresh_failure(instance, e)
        finally:
            plaintext.clear()

        if not isinstance(result, RefreshResult):
            raise RefreshTransientError(
                "Refresh hook returned an unexpected value",
                reason=AuthErrorReason.UNKNOWN.value,
                tenant_id=instance.tenant_id,
                instance_id=instance.instance_id,
                result_type=type(result).__name__,
            )

        now = self.clock()
        encrypted = dict(instance.values)
        encrypted.update(
            self.cipher.encrypt_values(instance.tenant_id, instance.connection_definition_id, result.values)
        )
        refreshed = instance.model_copy(
            update={
                "values": encrypted,
                "expires_at": result.resolve_expiry(definition.expiry_policy, now),
                "status": CredentialStatus.ACTIVE,
            }
        )

        try:
            stored = self.store.put(refreshed)
        except ConflictError as e:
            latest = self.store.get(instance.tenant_id, instance.instance_id)
            self._ensure_usable(latest)
            raise RefreshTransientError(
                "Credential changed while it was being refreshed",
                reason="conflict",
                tenant_id=instance.tenant_id,
                instance_id=instance.instance_id,
                cause=e,
            ) from e

        self.logger.info(
            "Credential refreshed",
            extra={
                "instance_id": stored.instance_id,
                "connection_definition_id": definition.id,
                "version": stored.version,
                "expires_at": stored.expires_at.isoformat() if stored.expires_at else None,
            },
        )
        return stored

    def _handle_refresh_failure(self, instance: CredentialInstance, error: AuthError) -> None:
        if error.reason is AuthErrorReason.INVALID_CREDENTIAL:
            self._persist_status(instance, CredentialStatus.INVALID)
            raise CredentialUnusableError(
                "Refresh was rejected; reconnect required",
                reason=AuthErrorReason.INVALID_CREDENTIAL.value,
                tenant_id=instance.tenant_id,
                instance_id=instance.instance_id,
                connection_definition_id=instance.connection_definition_id,
                cause=error,
            ) from error

        reason = "timeout" if error.context.get("timed_out") else error.reason.value
        raise RefreshTransientError(
            "Credential refresh failed; it may succeed on retry",
            reason=reason,
            tenant_id=instance.tenant_id,
            instance_id=instance.instance_id,
            connection_definition_id=instance.connection_definition_id,
            cause=error,
        ) from error

    def _persist_status(self, instance: CredentialInstance, status: CredentialStatus) -> None:
        """Record a terminal or expired status; a concurrent writer's result wins."""
        try:
            self.store.put(instance.model_copy(update={"status": status}))
        except ConflictError:
            self.logger.warning(
                "Status change lost to a concurrent write",
                extra={"instance_id": instance.instance_id, "status": status.value},
            )
            return
        self.logger.info(
            "Credential status changed",
            extra={
                "instance_id": instance.instance_id,
                "previous_status": instance.status.value,
                "status": status.value,
            },
        )

    # ==================== DECRYPTION ====================

    def _decrypt(self, instance: CredentialInstance) -> ResolvedCredential:
        values = self.cipher.decrypt_values(
            instance.tenant_id, instance.connection_definition_id, instance.values
        )
        credential = ResolvedCredential(
            tenant_id=instance.tenant_id,
            instance_id=instance.instance_id,
            connection_definition_id=instance.connection_definition_id,
            values=values,
            expires_at=instance.expires_at,
            version=instance.version,
        )
        values.clear()
        return credential
