"""
In-process credential store.

Reference implementation of the store contract, used by tests and by
single-process deployments. Copies go in and out so callers can never mutate
stored state.
"""

import threading
from typing import Dict, List, Optional, Tuple

from ..context.tenant_context import TenantContext
from ..exceptions import CredentialNotFoundError, conflict, duplicate
from ..schemas.credential_schemas import CredentialInstance
from ..utils.logger import get_logger
from ..utils.time_utils import utc_now
from .credential_store import CredentialStore


class InMemoryCredentialStore(CredentialStore):
    """Thread-safe dictionary-backed store."""

    def __init__(self):
        self._records: Dict[Tuple[str, str], CredentialInstance] = {}
        self._lock = threading.Lock()
        self.logger = get_logger()

    def get(self, tenant_id: str, instance_id: str) -> CredentialInstance:
        TenantContext.check_access(tenant_id)
        with self._lock:
            record = self._records.get((tenant_id, instance_id))
            if record is None:
                raise CredentialNotFoundError(
                    f"Credential instance not found: {instance_id}",
                    tenant_id=tenant_id,
                    instance_id=instance_id,
                )
            return record.model_copy(deep=True)

    def put(self, instance: CredentialInstance) -> CredentialInstance:
        TenantContext.check_access(instance.tenant_id)
        key = instance.key
        with self._lock:
            current = self._records.get(key)

            if instance.version == 0 and current is not None:
                raise duplicate(
                    "CredentialInstance", tenant_id=instance.tenant_id, instance_id=instance.instance_id
                )
            if instance.version > 0 and (current is None or current.version != instance.version):
                raise conflict(
                    "CredentialInstance",
                    expected_version=instance.version,
                    actual_version=current.version if current else None,
                    tenant_id=instance.tenant_id,
                    instance_id=instance.instance_id,
                )

            stored = instance.model_copy(
                deep=True, update={"version": instance.version + 1, "updated_at": utc_now()}
            )
            self._records[key] = stored

        self.logger.debug(
            "Stored credential instance",
            extra={
                "instance_id": stored.instance_id,
                "status": stored.status.value,
                "version": stored.version,
            },
        )
        return stored.model_copy(deep=True)

    def delete(self, tenant_id: str, instance_id: str) -> None:
        TenantContext.check_access(tenant_id)
        with self._lock:
            self._records.pop((tenant_id, instance_id), None)

    def list_for_tenant(
        self, tenant_id: str, connection_definition_id: Optional[str] = None
    ) -> List[CredentialInstance]:
        TenantContext.check_access(tenant_id)
        with self._lock:
            records = [
                record.model_copy(deep=True)
                for (record_tenant, _), record in self._records.items()
                if record_tenant == tenant_id
                and (
                    connection_definition_id is None
                    or record.connection_definition_id == connection_definition_id
                )
            ]
        return sorted(records, key=lambda record: record.created_at)
