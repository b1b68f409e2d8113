"""
Centralized configuration management for the Connection Core framework.

This module provides a unified configuration system with support for:
- Environment variables
- Feature flags
- Runtime configuration
- Validation using Pydantic
"""

import os
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import EnvironmentVariable, Limits, LogLevel, Timeouts


def _env_int(name: EnvironmentVariable, default: int) -> int:
    return int(os.getenv(name.value, str(default)))


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    connection_string: str = Field(
        default_factory=lambda: os.getenv(
            EnvironmentVariable.DATABASE_URL.value, "sqlite:///./connection_core.db"
        ),
        description="Database connection string",
    )
    pool_size: int = Field(default=5, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Maximum overflow connections")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    echo: bool = Field(default=False, description="Echo SQL statements")
    development_mode: bool = Field(default=False, description="Allow destructive schema operations")

    @property
    def is_sqlite(self) -> bool:
        return self.connection_string.startswith("sqlite")

    def __repr__(self) -> str:
        """String representation with the connection password masked."""
        masked = re.sub(r"://([^:/@]+):[^@]*@", r"://\1:***@", self.connection_string)
        return f"DatabaseConfig(connection_string='{masked}', echo={self.echo})"


class QueueConfig(BaseModel):
    """Queue configuration for Azure Storage Queues."""

    connection_string: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.AZURE_STORAGE_CONNECTION.value, ""),
        description="Azure Storage connection string",
    )
    logs_queue_name: str = Field(default="logs-queue", description="Logs queue name")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.LOG_LEVEL.value, LogLevel.INFO.value),
        description="Logging level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string",
    )

    @field_validator("level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {level.value for level in LogLevel}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class FeatureFlags(BaseModel):
    """Feature flags for controlling framework behavior."""

    enable_logs_queue: bool = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.ENABLE_LOGS_QUEUE.value, "false").lower()
        == "true",
        description="Ship structured logs to the Azure logs queue",
    )


class SecurityConfig(BaseModel):
    """Security-related configuration."""

    encryption_keys: List[str] = Field(
        default_factory=lambda: [
            key.strip()
            for key in os.getenv(EnvironmentVariable.ENCRYPTION_KEYS.value, "").split(",")
            if key.strip()
        ],
        description="Fernet master keys (urlsafe base64); the first one encrypts",
    )

    @property
    def primary_key(self) -> Optional[str]:
        return self.encryption_keys[0] if self.encryption_keys else None


class ResolverConfig(BaseModel):
    """Credential resolution and refresh behaviour."""

    safety_margin_seconds: int = Field(
        default_factory=lambda: _env_int(
            EnvironmentVariable.SAFETY_MARGIN_SECONDS, Timeouts.REFRESH_SAFETY_MARGIN
        ),
        ge=0,
        description="Refresh fixed-ttl credentials this many seconds before expiry",
    )
    lock_lease_seconds: int = Field(
        default_factory=lambda: _env_int(
            EnvironmentVariable.LOCK_LEASE_SECONDS, Timeouts.REFRESH_LOCK_LEASE
        ),
        gt=0,
        description="Maximum hold duration of a per-instance refresh lock",
    )
    lock_wait_seconds: int = Field(
        default=Timeouts.REFRESH_LOCK_WAIT,
        gt=0,
        description="Default wait for a refresh lock when the caller sets no timeout",
    )
    hook_timeout_seconds: int = Field(
        default_factory=lambda: _env_int(
            EnvironmentVariable.HOOK_TIMEOUT_SECONDS, Timeouts.EXTERNAL_API_CALL
        ),
        gt=0,
        description="Bound on a single validate/refresh call",
    )
    hook_workers: int = Field(
        default=Limits.HOOK_WORKERS, gt=0, description="Worker threads running validate/refresh hooks"
    )


class AppConfig(BaseModel):
    """Main application configuration."""

    environment: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.APP_ENV.value, "development"),
        description="Application environment",
    )
    debug: bool = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.DEBUG.value, "false").lower() == "true",
        description="Debug mode",
    )

    # Sub-configurations
    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Database configuration"
    )
    queue: QueueConfig = Field(default_factory=QueueConfig, description="Queue configuration")
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    features: FeatureFlags = Field(default_factory=FeatureFlags, description="Feature flags")
    security: SecurityConfig = Field(
        default_factory=SecurityConfig, description="Security configuration"
    )
    resolver: ResolverConfig = Field(
        default_factory=ResolverConfig, description="Credential resolver configuration"
    )

    # Custom configuration
    custom: Dict[str, Any] = Field(default_factory=dict, description="Custom configuration values")

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create configuration from environment variables."""
        return cls()

    def get_custom(self, key: str, default: Any = None) -> Any:
        """Get a custom configuration value."""
        return self.custom.get(key, default)

    def set_custom(self, key: str, value: Any) -> None:
        """Set a custom configuration value."""
        self.custom[key] = value


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def set_config(config: AppConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
