"""
Shared fixtures for connection_core tests.

Provides the SQLite in-memory database, a cipher with a throwaway master key,
a populated registry, both store implementations, and resolver/service
instances wired together the way a host application would.
"""

import pytest
from sqlalchemy.orm import Session

from connection_core.config import ResolverConfig, reset_config
from connection_core.connections import (
    ConnectionRegistry,
    create_api_key_connection,
    create_custom_connection,
)
from connection_core.context.tenant_context import TenantContext
from connection_core.db import DatabaseManager, close_db, get_development_config, initialize_db
from connection_core.db.db_config import Base
from connection_core.exceptions import clear_correlation_id
from connection_core.schemas import ExpiryPolicy, SchemaField
from connection_core.services import CredentialResolver, CredentialService
from connection_core.store import InMemoryCredentialStore, SqlCredentialStore
from connection_core.utils.encryption_utils import CredentialCipher, generate_master_key
from connection_core.utils.hook_runner import HookRunner
from tests.fixtures.doubles import (
    API_KEY_DEFINITION_ID,
    OAUTH_DEFINITION_ID,
    REPORTED_DEFINITION_ID,
    SESSION_DEFINITION_ID,
    MutableClock,
    RefreshRecorder,
)


@pytest.fixture(autouse=True)
def clean_thread_state():
    """Leave no tenant, correlation id or cached config behind."""
    yield
    TenantContext.clear_current_tenant()
    clear_correlation_id()
    reset_config()


# ==================== DATABASE ====================


@pytest.fixture(scope="session")
def db_manager() -> DatabaseManager:
    """In-memory SQLite database shared by the whole test session."""
    manager = initialize_db(get_development_config())
    yield manager
    close_db()


@pytest.fixture(scope="function")
def db_session(db_manager: DatabaseManager) -> Session:
    """
    Fresh tables and a session for each test.

    Tables are dropped afterwards so every test starts from an empty database.
    """
    Base.metadata.create_all(db_manager.engine)
    session = db_manager.get_session()

    yield session

    session.rollback()
    db_manager.close_session()
    Base.metadata.drop_all(db_manager.engine)


# ==================== CORE OBJECTS ====================


@pytest.fixture
def sample_tenant_id() -> str:
    return "tenant-acme"


@pytest.fixture
def other_tenant_id() -> str:
    return "tenant-globex"


@pytest.fixture
def cipher() -> CredentialCipher:
    return CredentialCipher([generate_master_key()])


@pytest.fixture
def resolver_config() -> ResolverConfig:
    return ResolverConfig(
        safety_margin_seconds=60,
        lock_lease_seconds=5,
        lock_wait_seconds=5,
        hook_timeout_seconds=2,
        hook_workers=4,
    )


@pytest.fixture
def hook_runner() -> HookRunner:
    runner = HookRunner(max_workers=4, default_timeout=2.0)
    yield runner
    runner.shutdown(wait=False)


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def refresh_hook() -> RefreshRecorder:
    return RefreshRecorder()


@pytest.fixture
def registry(refresh_hook: RefreshRecorder) -> ConnectionRegistry:
    """
    Registry holding one definition per lifecycle shape:

    - API key, never expires
    - OAuth2-like token pair, fixed TTL, refreshable
    - session token, fixed TTL, not refreshable
    - token pair refreshed only when the service reports a rejection
    """
    registry = ConnectionRegistry()
    registry.register(create_api_key_connection(id=API_KEY_DEFINITION_ID))
    registry.register(
        create_custom_connection(
            id=OAUTH_DEFINITION_ID,
            name="OAuth2",
            fields=[SchemaField(name="accessToken"), SchemaField(name="refreshToken")],
            refresh_hook=refresh_hook,
            expiry_policy=ExpiryPolicy.fixed_ttl(ttl_seconds=3600),
        )
    )
    registry.register(
        create_custom_connection(
            id=SESSION_DEFINITION_ID,
            name="Session token",
            fields=[SchemaField(name="sessionToken")],
            expiry_policy=ExpiryPolicy.fixed_ttl(ttl_seconds=900),
        )
    )
    registry.register(
        create_custom_connection(
            id=REPORTED_DEFINITION_ID,
            name="Reported expiry",
            fields=[SchemaField(name="accessToken"), SchemaField(name="refreshToken")],
            refresh_hook=refresh_hook,
            expiry_policy=ExpiryPolicy.token_reported(),
        )
    )
    registry.freeze()
    return registry


@pytest.fixture
def memory_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def sql_store(db_manager: DatabaseManager, db_session: Session) -> SqlCredentialStore:
    return SqlCredentialStore(db_manager)


@pytest.fixture
def resolver(
    memory_store, registry, cipher, resolver_config, hook_runner, clock
) -> CredentialResolver:
    return CredentialResolver(
        store=memory_store,
        registry=registry,
        cipher=cipher,
        config=resolver_config,
        hook_runner=hook_runner,
        clock=clock,
    )


@pytest.fixture
def service(memory_store, registry, cipher, hook_runner, clock) -> CredentialService:
    return CredentialService(
        store=memory_store,
        registry=registry,
        cipher=cipher,
        hook_runner=hook_runner,
        clock=clock,
    )
