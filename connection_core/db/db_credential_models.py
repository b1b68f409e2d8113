"""
Credential record model.

Just the data structure: one row per credential instance, field values held
as a JSON object of per-field Fernet tokens.
"""

from sqlalchemy import Column, DateTime, Index, Integer, String

from .db_base import JSON, TimestampMixin
from .db_config import Base


class CredentialRecord(Base, TimestampMixin):
    """Encrypted credential instance keyed by (tenant_id, instance_id)."""

    __tablename__ = "credential_records"

    tenant_id = Column(String(100), primary_key=True)
    instance_id = Column(String(36), primary_key=True)

    connection_definition_id = Column(String(100), nullable=False)
    definition_version = Column(Integer, nullable=False, default=1)

    # Field name -> Fernet token; never plaintext
    encrypted_values = Column(JSON, nullable=False)

    status = Column(String(20), nullable=False, default="active")
    expires_at = Column(DateTime(timezone=True), nullable=True)

    # Optimistic concurrency counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        Index("ix_credential_records_definition", "tenant_id", "connection_definition_id"),
    )
