"""
Constants and enums for the Connection Core framework.

This module centralizes all magic strings and constants used throughout
the framework to ensure consistency and maintainability.
"""

from enum import Enum


class LogLevel(str, Enum):
    """Standard logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EnvironmentVariable(str, Enum):
    """Standard environment variable names."""

    AZURE_STORAGE_CONNECTION = "AzureWebJobsStorage"
    DATABASE_URL = "DATABASE_URL"
    APP_ENV = "APP_ENV"
    LOG_LEVEL = "LOG_LEVEL"
    ENCRYPTION_KEYS = "CONNECTION_ENCRYPTION_KEYS"
    ENABLE_LOGS_QUEUE = "ENABLE_LOGS_QUEUE"
    SAFETY_MARGIN_SECONDS = "CREDENTIAL_SAFETY_MARGIN_SECONDS"
    LOCK_LEASE_SECONDS = "CREDENTIAL_LOCK_LEASE_SECONDS"
    HOOK_TIMEOUT_SECONDS = "CONNECTION_HOOK_TIMEOUT_SECONDS"
    DEBUG = "DEBUG"


# Time-related constants (in seconds)
class Timeouts:
    """Timeout values in seconds."""

    EXTERNAL_API_CALL = 10
    REFRESH_SAFETY_MARGIN = 60
    REFRESH_LOCK_LEASE = 30
    REFRESH_LOCK_WAIT = 30


class Limits:
    """System limits and thresholds."""

    HOOK_WORKERS = 8
    MAX_FIELD_NAME_LENGTH = 100
    MAX_DEFINITION_ID_LENGTH = 100
