"""
SQLAlchemy models and database management.
"""

from .db_base import JSON, TimestampMixin
from .db_config import (
    Base,
    DatabaseManager,
    close_db,
    get_db_manager,
    get_development_config,
    import_all_models,
    initialize_db,
    set_db_manager,
)
from .db_credential_models import CredentialRecord

__all__ = [
    # Base definitions
    "Base",
    "JSON",
    "TimestampMixin",
    # Management
    "DatabaseManager",
    "close_db",
    "get_db_manager",
    "get_development_config",
    "import_all_models",
    "initialize_db",
    "set_db_manager",
    # Models
    "CredentialRecord",
]
