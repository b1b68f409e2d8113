"""
Unit tests for the database manager.
"""

import pytest
from sqlalchemy import inspect

from connection_core.config import DatabaseConfig
from connection_core.db import DatabaseManager, get_db_manager, get_development_config
from connection_core.db.db_config import import_all_models, set_db_manager
from connection_core.exceptions import ServiceError


class TestDatabaseManager:
    """Test engine setup and schema management."""

    def test_development_database_has_credential_table(self):
        manager = DatabaseManager(get_development_config())
        import_all_models()
        try:
            manager.create_tables()
            assert "credential_records" in inspect(manager.engine).get_table_names()

            manager.drop_tables()
            assert "credential_records" not in inspect(manager.engine).get_table_names()
        finally:
            manager.close()

    def test_drop_tables_refused_outside_development(self):
        manager = DatabaseManager(DatabaseConfig(connection_string="sqlite:///:memory:"))
        try:
            with pytest.raises(ServiceError):
                manager.drop_tables()
        finally:
            manager.close()

    def test_new_sessions_are_independent(self):
        manager = DatabaseManager(get_development_config())
        try:
            first = manager.new_session()
            second = manager.new_session()
            assert first is not second
            assert manager.get_session() is manager.get_session()
            first.close()
            second.close()
        finally:
            manager.close()


class TestGlobalManager:
    def test_uninitialized(self, db_manager):
        set_db_manager(None)
        try:
            with pytest.raises(ServiceError):
                get_db_manager()
        finally:
            set_db_manager(db_manager)
