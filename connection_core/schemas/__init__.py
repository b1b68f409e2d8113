"""Pydantic schemas for connection definitions and credentials."""

from .connection_schema import (
    ConnectionSchema,
    FieldValidator,
    FieldViolation,
    LengthValidator,
    PatternValidator,
    PredicateValidator,
    SchemaField,
)
from .credential_schemas import (
    ConnectionDefinitionMetadata,
    CredentialInstance,
    CredentialInstanceRead,
    ExpiryPolicy,
    FieldMetadata,
    RefreshResult,
    ResolvedCredential,
)

__all__ = [
    "ConnectionSchema",
    "FieldValidator",
    "FieldViolation",
    "LengthValidator",
    "PatternValidator",
    "PredicateValidator",
    "SchemaField",
    "ConnectionDefinitionMetadata",
    "CredentialInstance",
    "CredentialInstanceRead",
    "ExpiryPolicy",
    "FieldMetadata",
    "RefreshResult",
    "ResolvedCredential",
]
