"""Connection definitions, auth-variant builders and the registry."""

from .definition import ConnectionDefinition
from .factories import (
    create_api_key_connection,
    create_basic_auth_connection,
    create_custom_connection,
    create_oauth2_connection,
)
from .registry import ConnectionRegistry

__all__ = [
    "ConnectionDefinition",
    "ConnectionRegistry",
    "create_api_key_connection",
    "create_basic_auth_connection",
    "create_custom_connection",
    "create_oauth2_connection",
]
