"""
Pydantic schemas for stored and resolved credentials.

CredentialInstance only ever carries encrypted field values. Plaintext lives
in ResolvedCredential, which is not a pydantic model on purpose: it must not
be dumped, serialized or copied into long-lived structures.
"""

from datetime import datetime
from typing import Dict, Iterator, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..enums import ConnectionKind, CredentialStatus, ExpiryPolicyKind, FieldKind
from ..utils.time_utils import ensure_aware, seconds_from_now, utc_now


class ExpiryPolicy(BaseModel):
    """How the resolver decides a credential is due for refresh."""

    model_config = ConfigDict(frozen=True)

    kind: ExpiryPolicyKind = ExpiryPolicyKind.NONE
    ttl_seconds: Optional[int] = Field(None, gt=0, description="Lifetime of a fresh credential")
    safety_margin_seconds: Optional[int] = Field(
        None, ge=0, description="Override of the resolver's default refresh margin"
    )

    @model_validator(mode="after")
    def validate_margin(self):
        if self.ttl_seconds is not None and self.safety_margin_seconds is not None:
            if self.safety_margin_seconds >= self.ttl_seconds:
                raise ValueError("safety_margin_seconds must be shorter than ttl_seconds")
        return self

    @classmethod
    def none(cls) -> "ExpiryPolicy":
        return cls(kind=ExpiryPolicyKind.NONE)

    @classmethod
    def fixed_ttl(
        cls, ttl_seconds: Optional[int] = None, safety_margin_seconds: Optional[int] = None
    ) -> "ExpiryPolicy":
        return cls(
            kind=ExpiryPolicyKind.FIXED_TTL,
            ttl_seconds=ttl_seconds,
            safety_margin_seconds=safety_margin_seconds,
        )

    @classmethod
    def token_reported(cls) -> "ExpiryPolicy":
        return cls(kind=ExpiryPolicyKind.TOKEN_REPORTED)

    def initial_expiry(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """Expiry assigned to a freshly created credential, if the policy knows one."""
        if self.kind is ExpiryPolicyKind.FIXED_TTL and self.ttl_seconds:
            return seconds_from_now(self.ttl_seconds, now)
        return None


class CredentialInstance(BaseModel):
    """One tenant's stored credential for one connection definition."""

    model_config = ConfigDict(validate_assignment=True)

    tenant_id: str = Field(..., min_length=1, max_length=100)
    connection_definition_id: str = Field(..., min_length=1, max_length=100)
    definition_version: int = Field(default=1, ge=1)
    instance_id: str = Field(..., min_length=1, max_length=36)
    values: Dict[str, str] = Field(..., description="Field name to Fernet token")
    status: CredentialStatus = CredentialStatus.ACTIVE
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    expires_at: Optional[datetime] = None
    version: int = Field(default=0, ge=0, description="Optimistic concurrency counter")

    @model_validator(mode="after")
    def normalize_timestamps(self):
        # Direct __dict__ writes avoid re-triggering validate_assignment
        self.__dict__["created_at"] = ensure_aware(self.created_at)
        self.__dict__["updated_at"] = ensure_aware(self.updated_at)
        self.__dict__["expires_at"] = ensure_aware(self.expires_at)
        return self

    @property
    def key(self) -> tuple:
        return (self.tenant_id, self.instance_id)

    def is_past_expiry(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at is not None and (now or utc_now()) >= self.expires_at


class CredentialInstanceRead(BaseModel):
    """Instance metadata safe to show in the setup UI (no values)."""

    model_config = ConfigDict(from_attributes=True)

    tenant_id: str
    connection_definition_id: str
    definition_version: int
    instance_id: str
    field_names: List[str]
    status: CredentialStatus
    created_at: datetime
    updated_at: datetime
    expires_at: Optional[datetime] = None

    @classmethod
    def from_instance(cls, instance: CredentialInstance) -> "CredentialInstanceRead":
        return cls(
            tenant_id=instance.tenant_id,
            connection_definition_id=instance.connection_definition_id,
            definition_version=instance.definition_version,
            instance_id=instance.instance_id,
            field_names=sorted(instance.values.keys()),
            status=instance.status,
            created_at=instance.created_at,
            updated_at=instance.updated_at,
            expires_at=instance.expires_at,
        )


class RefreshResult(BaseModel):
    """What a refresh hook hands back: new plaintext values and their lifetime."""

    values: Dict[str, str] = Field(..., description="Fields to overwrite; others are kept")
    expires_at: Optional[datetime] = None
    expires_in: Optional[int] = Field(None, gt=0, description="Seconds until expiry")

    def resolve_expiry(self, policy: ExpiryPolicy, now: Optional[datetime] = None) -> Optional[datetime]:
        if self.expires_at is not None:
            return ensure_aware(self.expires_at)
        if self.expires_in is not None:
            return seconds_from_now(self.expires_in, now)
        return policy.initial_expiry(now)


class FieldMetadata(BaseModel):
    name: str
    kind: FieldKind
    required: bool
    title: Optional[str] = None
    description: Optional[str] = None


class ConnectionDefinitionMetadata(BaseModel):
    """Definition description for the setup UI."""

    id: str
    name: str
    description: str
    version: int
    kind: ConnectionKind
    expiry_policy: ExpiryPolicy
    supports_validation: bool
    supports_refresh: bool
    fields: List[FieldMetadata]


class ResolvedCredential:
    """
    Plaintext credential values for exactly one action execution.

    Use as a context manager (or call ``wipe``) so the values are dropped when
    the execution that asked for them ends. ``repr`` never shows values.
    """

    __slots__ = (
        "tenant_id",
        "instance_id",
        "connection_definition_id",
        "expires_at",
        "version",
        "_values",
    )

    def __init__(
        self,
        tenant_id: str,
        instance_id: str,
        connection_definition_id: str,
        values: Mapping[str, str],
        expires_at: Optional[datetime] = None,
        version: int = 0,
    ):
        self.tenant_id = tenant_id
        self.instance_id = instance_id
        self.connection_definition_id = connection_definition_id
        self.expires_at = expires_at
        self.version = version
        self._values: Optional[Dict[str, str]] = dict(values)

    def _require_values(self) -> Dict[str, str]:
        if self._values is None:
            raise RuntimeError("Resolved credential was already wiped")
        return self._values

    def __getitem__(self, name: str) -> str:
        return self._require_values()[name]

    def __contains__(self, name: object) -> bool:
        return name in self._require_values()

    def __iter__(self) -> Iterator[str]:
        return iter(self._require_values())

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._require_values().get(name, default)

    @property
    def values(self) -> Dict[str, str]:
        """A copy of the plaintext values; the caller owns and must drop it."""
        return dict(self._require_values())

    @property
    def field_names(self) -> List[str]:
        return sorted(self._require_values().keys())

    @property
    def wiped(self) -> bool:
        return self._values is None

    def wipe(self) -> None:
        """Drop every plaintext reference held by this object."""
        if self._values is not None:
            self._values.clear()
            self._values = None

    def __enter__(self) -> "ResolvedCredential":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __repr__(self) -> str:
        fields = "<wiped>" if self._values is None else ", ".join(f"{k}=***" for k in self.field_names)
        return (
            f"ResolvedCredential(tenant_id='{self.tenant_id}', instance_id='{self.instance_id}', "
            f"connection_definition_id='{self.connection_definition_id}', {fields})"
        )

    __str__ = __repr__

    def __reduce__(self):
        raise TypeError("ResolvedCredential cannot be pickled")
