"""
Enums used across the connection_core package.

This module contains enum definitions that are used by multiple modules
to avoid circular import issues.
"""

import enum


class FieldKind(str, enum.Enum):
    """Whether a connection field holds secret material."""

    SECRET = "secret"
    PLAIN = "plain"


class ConnectionKind(str, enum.Enum):
    """Auth protocol family of a connection definition."""

    API_KEY = "api_key"
    OAUTH2 = "oauth2"
    BASIC = "basic"
    CUSTOM = "custom"


class ExpiryPolicyKind(str, enum.Enum):
    """How a credential's expiry is managed."""

    NONE = "none"
    FIXED_TTL = "fixed_ttl"
    TOKEN_REPORTED = "token_reported"


class CredentialStatus(str, enum.Enum):
    """Lifecycle status of a stored credential instance."""

    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"
    INVALID = "invalid"

    @property
    def is_terminal(self) -> bool:
        return self in (CredentialStatus.REVOKED, CredentialStatus.INVALID)


class AuthErrorReason(str, enum.Enum):
    """Outcome classes of a validate or refresh call."""

    INVALID_CREDENTIAL = "invalid-credential"
    NETWORK = "network"
    UNKNOWN = "unknown"
