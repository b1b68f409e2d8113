"""
SQLAlchemy-backed credential store.

Every operation runs in its own short session and commits before returning,
so the store can be shared by concurrent resolver threads. Updates are a
single ``UPDATE ... WHERE version = :expected`` statement; zero affected rows
means another writer won.
"""

from contextlib import contextmanager
from typing import Any, Iterator, List, NoReturn, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..context.tenant_context import TenantContext
from ..db.db_config import DatabaseManager
from ..db.db_credential_models import CredentialRecord
from ..enums import CredentialStatus
from ..exceptions import (
    BaseError,
    CredentialNotFoundError,
    ErrorCode,
    RepositoryError,
    conflict,
    duplicate,
)
from ..schemas.credential_schemas import CredentialInstance
from ..utils.logger import get_logger
from ..utils.time_utils import utc_now
from .credential_store import CredentialStore


class SqlCredentialStore(CredentialStore):
    """Credential store on the ``credential_records`` table."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager
        self.logger = get_logger()

    def _handle_db_error(self, e: Exception, operation_name: str, **context: Any) -> NoReturn:
        """Map SQLAlchemy failures onto RepositoryError; domain errors pass through."""
        if isinstance(e, BaseError):
            raise e

        error_context = {"operation_name": operation_name, "entity_type": "CredentialRecord", **context}

        if isinstance(e, IntegrityError):
            raise duplicate("CredentialInstance", cause=e, **context) from e

        if isinstance(e, SQLAlchemyError):
            self.logger.error(f"Database error in {operation_name}", extra=error_context)
            raise RepositoryError(
                f"Database error for CredentialRecord: {type(e).__name__}",
                error_code=ErrorCode.DATABASE_ERROR,
                cause=e,
                **error_context,
            ) from e

        raise RepositoryError(
            f"Unexpected error for CredentialRecord: {type(e).__name__}",
            error_code=ErrorCode.INTERNAL_ERROR,
            cause=e,
            **error_context,
        ) from e

    @contextmanager
    def _session_operation(self, operation_name: str, **context: Any) -> Iterator[Session]:
        """Own a session for one operation: commit on success, roll back on error."""
        session = self.db_manager.new_session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            self._handle_db_error(e, operation_name, **context)
        finally:
            session.close()

    @staticmethod
    def _to_instance(record: CredentialRecord) -> CredentialInstance:
        return CredentialInstance(
            tenant_id=record.tenant_id,
            instance_id=record.instance_id,
            connection_definition_id=record.connection_definition_id,
            definition_version=record.definition_version,
            values=dict(record.encrypted_values or {}),
            status=CredentialStatus(record.status),
            created_at=record.created_at,
            updated_at=record.updated_at,
            expires_at=record.expires_at,
            version=record.version,
        )

    def get(self, tenant_id: str, instance_id: str) -> CredentialInstance:
        TenantContext.check_access(tenant_id)
        with self._session_operation("get", tenant_id=tenant_id, instance_id=instance_id) as session:
            record = session.get(CredentialRecord, (tenant_id, instance_id))
            if record is None:
                raise CredentialNotFoundError(
                    f"Credential instance not found: {instance_id}",
                    tenant_id=tenant_id,
                    instance_id=instance_id,
                )
            return self._to_instance(record)

    def put(self, instance: CredentialInstance) -> CredentialInstance:
        TenantContext.check_access(instance.tenant_id)
        now = utc_now()
        new_version = instance.version + 1
        ids = {"tenant_id": instance.tenant_id, "instance_id": instance.instance_id}

        with self._session_operation("put", **ids) as session:
            if instance.version == 0:
                session.add(
                    CredentialRecord(
                        tenant_id=instance.tenant_id,
                        instance_id=instance.instance_id,
                        connection_definition_id=instance.connection_definition_id,
                        definition_version=instance.definition_version,
                        encrypted_values=dict(instance.values),
                        status=instance.status.value,
                        expires_at=instance.expires_at,
                        version=new_version,
                        created_at=instance.created_at,
                        updated_at=now,
                    )
                )
                session.flush()
            else:
                result = session.execute(
                    update(CredentialRecord)
                    .where(
                        CredentialRecord.tenant_id == instance.tenant_id,
                        CredentialRecord.instance_id == instance.instance_id,
                        CredentialRecord.version == instance.version,
                    )
                    .values(
                        connection_definition_id=instance.connection_definition_id,
                        definition_version=instance.definition_version,
                        encrypted_values=dict(instance.values),
                        status=instance.status.value,
                        expires_at=instance.expires_at,
                        version=new_version,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    actual = session.execute(
                        select(CredentialRecord.version).where(
                            CredentialRecord.tenant_id == instance.tenant_id,
                            CredentialRecord.instance_id == instance.instance_id,
                        )
                    ).scalar_one_or_none()
                    raise conflict(
                        "CredentialInstance",
                        expected_version=instance.version,
                        actual_version=actual,
                        **ids,
                    )

        self.logger.debug(
            "Stored credential instance",
            extra={"instance_id": instance.instance_id, "status": instance.status.value, "version": new_version},
        )
        return instance.model_copy(deep=True, update={"version": new_version, "updated_at": now})

    def delete(self, tenant_id: str, instance_id: str) -> None:
        TenantContext.check_access(tenant_id)
        with self._session_operation("delete", tenant_id=tenant_id, instance_id=instance_id) as session:
            session.execute(
                delete(CredentialRecord).where(
                    CredentialRecord.tenant_id == tenant_id,
                    CredentialRecord.instance_id == instance_id,
                )
            )

    def list_for_tenant(
        self, tenant_id: str, connection_definition_id: Optional[str] = None
    ) -> List[CredentialInstance]:
        TenantContext.check_access(tenant_id)
        with self._session_operation("list_for_tenant", tenant_id=tenant_id) as session:
            query = select(CredentialRecord).where(CredentialRecord.tenant_id == tenant_id)
            if connection_definition_id is not None:
                query = query.where(CredentialRecord.connection_definition_id == connection_definition_id)
            query = query.order_by(CredentialRecord.created_at, CredentialRecord.instance_id)
            return [self._to_instance(record) for record in session.execute(query).scalars()]
