"""
Builders for the supported auth variants.

Every builder returns the same ConnectionDefinition type; only the schema and
the attached hooks differ.
"""

from typing import Optional, Sequence

import httpx

from ..constants import Timeouts
from ..enums import ConnectionKind, FieldKind
from ..schemas.connection_schema import ConnectionSchema, FieldValidator, SchemaField
from ..schemas.credential_schemas import ExpiryPolicy
from .definition import ConnectionDefinition, RefreshHook, ValidateHook
from .http_hooks import (
    HeaderBuilder,
    basic_auth_header,
    bearer_header,
    http_validator,
    oauth2_refresher,
)

API_KEY_FIELD = "apiKey"
USERNAME_FIELD = "username"
PASSWORD_FIELD = "password"
ACCESS_TOKEN_FIELD = "accessToken"
REFRESH_TOKEN_FIELD = "refreshToken"
CLIENT_ID_FIELD = "clientId"
CLIENT_SECRET_FIELD = "clientSecret"

DEFAULT_OAUTH2_TOKEN_TTL = 3600


def create_api_key_connection(
    id: str,
    name: str = "API Key",
    description: str = "Connect using an API Key",
    version: int = 1,
    key_validators: Sequence[FieldValidator] = (),
    validate_url: Optional[str] = None,
    build_headers: Optional[HeaderBuilder] = None,
    validate_timeout: float = Timeouts.EXTERNAL_API_CALL,
    transport: Optional[httpx.BaseTransport] = None,
) -> ConnectionDefinition:
    """
    Single secret ``apiKey`` field, no expiry.

    With ``validate_url`` the definition validates by calling that endpoint with
    the key as a bearer token (or whatever ``build_headers`` produces).
    """
    schema = ConnectionSchema(
        id=id,
        fields=(
            SchemaField(
                name=API_KEY_FIELD,
                kind=FieldKind.SECRET,
                required=True,
                validators=tuple(key_validators),
                title="API Key",
            ),
        ),
    )

    validate_hook = None
    if validate_url:
        validate_hook = http_validator(
            validate_url,
            build_headers or bearer_header(API_KEY_FIELD),
            timeout=validate_timeout,
            transport=transport,
        )

    return ConnectionDefinition(
        id=id,
        name=name,
        description=description,
        version=version,
        kind=ConnectionKind.API_KEY,
        schema=schema,
        validate_hook=validate_hook,
        expiry_policy=ExpiryPolicy.none(),
    )


def create_basic_auth_connection(
    id: str,
    name: str = "Username and Password",
    description: str = "Connect using a username and password",
    version: int = 1,
    validate_url: Optional[str] = None,
    validate_timeout: float = Timeouts.EXTERNAL_API_CALL,
    transport: Optional[httpx.BaseTransport] = None,
) -> ConnectionDefinition:
    """Plain ``username`` and secret ``password``."""
    schema = ConnectionSchema(
        id=id,
        fields=(
            SchemaField(name=USERNAME_FIELD, kind=FieldKind.PLAIN, required=True, title="Username"),
            SchemaField(name=PASSWORD_FIELD, kind=FieldKind.SECRET, required=True, title="Password"),
        ),
    )

    validate_hook = None
    if validate_url:
        validate_hook = http_validator(
            validate_url,
            basic_auth_header(USERNAME_FIELD, PASSWORD_FIELD),
            timeout=validate_timeout,
            transport=transport,
        )

    return ConnectionDefinition(
        id=id,
        name=name,
        description=description,
        version=version,
        kind=ConnectionKind.BASIC,
        schema=schema,
        validate_hook=validate_hook,
        expiry_policy=ExpiryPolicy.none(),
    )


def create_oauth2_connection(
    id: str,
    token_url: str,
    name: str = "OAuth2",
    description: str = "Connect with OAuth2",
    version: int = 1,
    validate_url: Optional[str] = None,
    client_credential_location: str = "body",
    expiry_policy: Optional[ExpiryPolicy] = None,
    hook_timeout: float = Timeouts.EXTERNAL_API_CALL,
    transport: Optional[httpx.BaseTransport] = None,
) -> ConnectionDefinition:
    """
    Access and refresh token pair, refreshed at ``token_url``.

    The default policy refreshes proactively, assuming hour-long tokens when
    the token endpoint does not report ``expires_in``.
    """
    schema = ConnectionSchema(
        id=id,
        fields=(
            SchemaField(name=ACCESS_TOKEN_FIELD, kind=FieldKind.SECRET, required=True, title="Access Token"),
            SchemaField(name=REFRESH_TOKEN_FIELD, kind=FieldKind.SECRET, required=True, title="Refresh Token"),
            SchemaField(name=CLIENT_ID_FIELD, kind=FieldKind.PLAIN, required=False, title="Client ID"),
            SchemaField(name=CLIENT_SECRET_FIELD, kind=FieldKind.SECRET, required=False, title="Client Secret"),
        ),
    )

    validate_hook = None
    if validate_url:
        validate_hook = http_validator(
            validate_url,
            bearer_header(ACCESS_TOKEN_FIELD),
            timeout=hook_timeout,
            transport=transport,
        )

    refresh_hook = oauth2_refresher(
        token_url,
        access_token_field=ACCESS_TOKEN_FIELD,
        refresh_token_field=REFRESH_TOKEN_FIELD,
        client_id_field=CLIENT_ID_FIELD,
        client_secret_field=CLIENT_SECRET_FIELD,
        client_credential_location=client_credential_location,
        timeout=hook_timeout,
        transport=transport,
    )

    return ConnectionDefinition(
        id=id,
        name=name,
        description=description,
        version=version,
        kind=ConnectionKind.OAUTH2,
        schema=schema,
        validate_hook=validate_hook,
        refresh_hook=refresh_hook,
        expiry_policy=expiry_policy or ExpiryPolicy.fixed_ttl(ttl_seconds=DEFAULT_OAUTH2_TOKEN_TTL),
    )


def create_custom_connection(
    id: str,
    name: str,
    fields: Sequence[SchemaField],
    description: str = "",
    version: int = 1,
    validate_hook: Optional[ValidateHook] = None,
    refresh_hook: Optional[RefreshHook] = None,
    expiry_policy: Optional[ExpiryPolicy] = None,
) -> ConnectionDefinition:
    """Caller-supplied fields and hooks for handshakes the other builders do not cover."""
    return ConnectionDefinition(
        id=id,
        name=name,
        description=description,
        version=version,
        kind=ConnectionKind.CUSTOM,
        schema=ConnectionSchema(id=id, fields=tuple(fields)),
        validate_hook=validate_hook,
        refresh_hook=refresh_hook,
        expiry_policy=expiry_policy,
    )
