"""
The uniform connection definition every auth variant produces.

Variants (API key, OAuth2, basic, custom) differ only in the schema they
declare and the hooks they attach. The resolver and the services work against
this class alone and never branch on ``kind``.
"""

from typing import Callable, Mapping, Optional

from ..enums import ConnectionKind
from ..schemas.connection_schema import ConnectionSchema
from ..schemas.credential_schemas import (
    ConnectionDefinitionMetadata,
    ExpiryPolicy,
    FieldMetadata,
    RefreshResult,
)

ValidateHook = Callable[[Mapping[str, str]], None]
RefreshHook = Callable[[Mapping[str, str]], RefreshResult]


class ConnectionDefinition:
    """
    A named, versioned binding of a ConnectionSchema to one third-party service.

    ``validate_hook(values)`` returns None when the credential authenticates and
    raises AuthError otherwise. ``refresh_hook(values)`` returns a RefreshResult
    or raises AuthError. Both receive plaintext values and must not log them.
    Instances are immutable once built.
    """

    __slots__ = (
        "_id",
        "_name",
        "_description",
        "_version",
        "_kind",
        "_schema",
        "_validate_hook",
        "_refresh_hook",
        "_expiry_policy",
    )

    def __init__(
        self,
        id: str,
        name: str,
        schema: ConnectionSchema,
        description: str = "",
        version: int = 1,
        kind: ConnectionKind = ConnectionKind.CUSTOM,
        validate_hook: Optional[ValidateHook] = None,
        refresh_hook: Optional[RefreshHook] = None,
        expiry_policy: Optional[ExpiryPolicy] = None,
    ):
        if not id or not isinstance(id, str):
            raise ValueError("Connection definition id must be a non-empty string")
        if version < 1:
            raise ValueError("Connection definition version must be >= 1")
        self._id = id
        self._name = name
        self._description = description
        self._version = version
        self._kind = ConnectionKind(kind)
        self._schema = schema
        self._validate_hook = validate_hook
        self._refresh_hook = refresh_hook
        self._expiry_policy = expiry_policy or ExpiryPolicy.none()

    def __setattr__(self, name, value):
        if hasattr(self, "_expiry_policy"):
            raise AttributeError("ConnectionDefinition is immutable")
        object.__setattr__(self, name, value)

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def version(self) -> int:
        return self._version

    @property
    def kind(self) -> ConnectionKind:
        return self._kind

    @property
    def schema(self) -> ConnectionSchema:
        return self._schema

    @property
    def expiry_policy(self) -> ExpiryPolicy:
        return self._expiry_policy

    @property
    def validate_hook(self) -> Optional[ValidateHook]:
        return self._validate_hook

    @property
    def refresh_hook(self) -> Optional[RefreshHook]:
        return self._refresh_hook

    @property
    def supports_validation(self) -> bool:
        return self._validate_hook is not None

    @property
    def supports_refresh(self) -> bool:
        return self._refresh_hook is not None

    def same_shape(self, other: "ConnectionDefinition") -> bool:
        """
        True when ``other`` declares the same version, schema, metadata and policy.

        Hooks are compared by presence only: builders wrap them in fresh
        closures, so two builds of one definition never share hook objects.
        """
        return (
            self.version == other.version
            and self.schema == other.schema
            and self.kind == other.kind
            and self.name == other.name
            and self.description == other.description
            and self.expiry_policy == other.expiry_policy
            and self.supports_validation == other.supports_validation
            and self.supports_refresh == other.supports_refresh
        )

    def metadata(self) -> ConnectionDefinitionMetadata:
        return ConnectionDefinitionMetadata(
            id=self.id,
            name=self.name,
            description=self.description,
            version=self.version,
            kind=self.kind,
            expiry_policy=self.expiry_policy,
            supports_validation=self.supports_validation,
            supports_refresh=self.supports_refresh,
            fields=[
                FieldMetadata(
                    name=schema_field.name,
                    kind=schema_field.kind,
                    required=schema_field.required,
                    title=schema_field.title,
                    description=schema_field.description,
                )
                for schema_field in self.schema.fields
            ],
        )

    def __repr__(self) -> str:
        return (
            f"ConnectionDefinition(id='{self.id}', version={self.version}, "
            f"kind='{self.kind.value}')"
        )
