"""
Unit tests for CredentialService.
"""

from datetime import timedelta
from unittest.mock import patch

import httpx
import pytest

from connection_core.connections import ConnectionRegistry, create_api_key_connection
from connection_core.enums import AuthErrorReason, CredentialStatus
from connection_core.exceptions import (
    AuthError,
    ConflictError,
    ConnectionDefinitionNotFoundError,
    CredentialNotFoundError,
    CredentialUnusableError,
    ValidationError,
    conflict,
)
from connection_core.services import CredentialService
from connection_core.store import InMemoryCredentialStore
from tests.fixtures.doubles import (
    API_KEY_DEFINITION_ID,
    OAUTH_DEFINITION_ID,
    SESSION_DEFINITION_ID,
)

VERIFIED_DEFINITION_ID = "acme_connection_verified"


class WhoAmI:
    """Mock transport whose status code the test controls."""

    def __init__(self, status_code=200):
        self.status_code = status_code
        self.requests = []
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request):
        self.requests.append(request)
        return httpx.Response(self.status_code, json={})


@pytest.fixture
def whoami() -> WhoAmI:
    return WhoAmI()


@pytest.fixture
def verifying_service(whoami, memory_store, cipher, hook_runner, clock) -> CredentialService:
    """Service whose only definition validates against a mocked who-am-i endpoint."""
    registry = ConnectionRegistry()
    registry.register(
        create_api_key_connection(
            id=VERIFIED_DEFINITION_ID,
            validate_url="https://api.acme.test/me",
            transport=whoami.transport,
        )
    )
    return CredentialService(
        store=memory_store, registry=registry, cipher=cipher, hook_runner=hook_runner, clock=clock
    )


class TestCreateInstance:
    """Test turning user input into stored instances."""

    def test_create_api_key_instance(self, service, resolver, memory_store, sample_tenant_id):
        created = service.create_instance(sample_tenant_id, API_KEY_DEFINITION_ID, {"apiKey": "sk_live_123"})

        assert created.status is CredentialStatus.ACTIVE
        assert created.expires_at is None
        assert created.field_names == ["apiKey"]
        assert created.definition_version == 1

        stored = memory_store.get(sample_tenant_id, created.instance_id)
        assert stored.values["apiKey"] != "sk_live_123"
        assert resolver.resolve_credential(sample_tenant_id, created.instance_id)["apiKey"] == "sk_live_123"

    def test_read_model_carries_no_values(self, service, sample_tenant_id):
        created = service.create_instance(sample_tenant_id, API_KEY_DEFINITION_ID, {"apiKey": "sk_live_123"})

        assert "sk_live_123" not in created.model_dump_json()
        assert "values" not in created.model_dump()

    def test_empty_api_key_rejected(self, service, memory_store, sample_tenant_id):
        with pytest.raises(ValidationError) as exc_info:
            service.create_instance(sample_tenant_id, API_KEY_DEFINITION_ID, {"apiKey": ""})

        assert exc_info.value.context["field"] == "apiKey"
        assert memory_store.list_for_tenant(sample_tenant_id) == []

    def test_unknown_definition(self, service, sample_tenant_id):
        with pytest.raises(ConnectionDefinitionNotFoundError):
            service.create_instance(sample_tenant_id, "acme_connection_unknown", {"apiKey": "k"})

    def test_fixed_ttl_sets_initial_expiry(self, service, clock, sample_tenant_id):
        created = service.create_instance(
            sample_tenant_id, OAUTH_DEFINITION_ID, {"accessToken": "a", "refreshToken": "r"}
        )

        assert created.expires_at == clock.now + timedelta(seconds=3600)

    def test_explicit_expiry_wins(self, service, clock, sample_tenant_id):
        expires_at = clock.now + timedelta(minutes=5)

        created = service.create_instance(
            sample_tenant_id, SESSION_DEFINITION_ID, {"sessionToken": "s"}, expires_at=expires_at
        )

        assert created.expires_at == expires_at

    def test_verify_success(self, verifying_service, whoami, sample_tenant_id):
        created = verifying_service.create_instance(
            sample_tenant_id, VERIFIED_DEFINITION_ID, {"apiKey": "sk_live_123"}, verify=True
        )

        assert created.status is CredentialStatus.ACTIVE
        assert whoami.requests[0].headers["Authorization"] == "Bearer sk_live_123"

    def test_verify_rejection_stores_nothing(self, verifying_service, whoami, memory_store, sample_tenant_id):
        whoami.status_code = 401

        with pytest.raises(AuthError) as exc_info:
            verifying_service.create_instance(
                sample_tenant_id, VERIFIED_DEFINITION_ID, {"apiKey": "sk_live_bad"}, verify=True
            )

        assert exc_info.value.reason is AuthErrorReason.INVALID_CREDENTIAL
        assert memory_store.list_for_tenant(sample_tenant_id) == []

    def test_no_verification_unless_asked(self, verifying_service, whoami, sample_tenant_id):
        verifying_service.create_instance(sample_tenant_id, VERIFIED_DEFINITION_ID, {"apiKey": "k"})

        assert whoami.requests == []


class TestQueries:
    """Test instance listing and lookup."""

    def test_get_instance(self, service, sample_tenant_id):
        created = service.create_instance(sample_tenant_id, API_KEY_DEFINITION_ID, {"apiKey": "k"})

        assert service.get_instance(sample_tenant_id, created.instance_id) == created

    def test_list_instances_by_definition(self, service, sample_tenant_id, other_tenant_id):
        api_key = service.create_instance(sample_tenant_id, API_KEY_DEFINITION_ID, {"apiKey": "k"})
        session = service.create_instance(sample_tenant_id, SESSION_DEFINITION_ID, {"sessionToken": "s"})
        service.create_instance(other_tenant_id, API_KEY_DEFINITION_ID, {"apiKey": "other"})

        all_ids = {i.instance_id for i in service.list_instances(sample_tenant_id)}
        api_key_ids = [i.instance_id for i in service.list_instances(sample_tenant_id, API_KEY_DEFINITION_ID)]

        assert all_ids == {api_key.instance_id, session.instance_id}
        assert api_key_ids == [api_key.instance_id]

    def test_get_other_tenants_instance(self, service, sample_tenant_id, other_tenant_id):
        created = service.create_instance(sample_tenant_id, API_KEY_DEFINITION_ID, {"apiKey": "k"})

        with pytest.raises(CredentialNotFoundError):
            service.get_instance(other_tenant_id, created.instance_id)

    def test_list_definitions(self, service):
        ids = [metadata.id for metadata in service.list_definitions()]
        assert ids[0] == API_KEY_DEFINITION_ID
        assert OAUTH_DEFINITION_ID in ids


class TestRevokeInstance:
    """Test revocation."""

    def test_revoke_drops_values(self, service, resolver, memory_store, sample_tenant_id):
        created = service.create_instance(sample_tenant_id, API_KEY_DEFINITION_ID, {"apiKey": "k"})

        revoked = service.revoke_instance(sample_tenant_id, created.instance_id)

        assert revoked.status is CredentialStatus.REVOKED
        assert memory_store.get(sample_tenant_id, created.instance_id).values == {}
        with pytest.raises(CredentialUnusableError) as exc_info:
            resolver.resolve_credential(sample_tenant_id, created.instance_id)
        assert exc_info.value.reason == "revoked"

    def test_revoke_is_idempotent(self, service, memory_store, sample_tenant_id):
        created = service.create_instance(sample_tenant_id, API_KEY_DEFINITION_ID, {"apiKey": "k"})
        service.revoke_instance(sample_tenant_id, created.instance_id)
        version = memory_store.get(sample_tenant_id, created.instance_id).version

        again = service.revoke_instance(sample_tenant_id, created.instance_id)

        assert again.status is CredentialStatus.REVOKED
        assert memory_store.get(sample_tenant_id, created.instance_id).version == version

    def test_revoke_retries_after_concurrent_write(self, registry, cipher, hook_runner, sample_tenant_id):
        class RacingStore(InMemoryCredentialStore):
            """Loses the first write to a simulated concurrent refresh."""

            def __init__(self):
                super().__init__()
                self.lost = 0

            def put(self, instance):
                if instance.status is CredentialStatus.REVOKED and self.lost == 0:
                    self.lost += 1
                    raise conflict("CredentialInstance", instance.version, instance.version + 1)
                return super().put(instance)

        store = RacingStore()
        racing_service = CredentialService(store=store, registry=registry, cipher=cipher, hook_runner=hook_runner)
        created = racing_service.create_instance(sample_tenant_id, API_KEY_DEFINITION_ID, {"apiKey": "k"})

        revoked = racing_service.revoke_instance(sample_tenant_id, created.instance_id)

        assert store.lost == 1
        assert revoked.status is CredentialStatus.REVOKED

    def test_revoke_gives_up_after_repeated_conflicts(self, registry, cipher, hook_runner, sample_tenant_id):
        class AlwaysLosingStore(InMemoryCredentialStore):
            def put(self, instance):
                if instance.status is CredentialStatus.REVOKED:
                    raise conflict("CredentialInstance", instance.version, instance.version + 1)
                return super().put(instance)

        losing_service = CredentialService(
            store=AlwaysLosingStore(), registry=registry, cipher=cipher, hook_runner=hook_runner
        )
        created = losing_service.create_instance(sample_tenant_id, API_KEY_DEFINITION_ID, {"apiKey": "k"})

        with pytest.raises(ConflictError):
            losing_service.revoke_instance(sample_tenant_id, created.instance_id)


class TestValidateInstance:
    """Test live re-validation of stored credentials."""

    def test_valid_credential_unchanged(self, verifying_service, whoami, memory_store, sample_tenant_id):
        created = verifying_service.create_instance(sample_tenant_id, VERIFIED_DEFINITION_ID, {"apiKey": "k"})

        result = verifying_service.validate_instance(sample_tenant_id, created.instance_id)

        assert result.status is CredentialStatus.ACTIVE
        assert whoami.requests[0].headers["Authorization"] == "Bearer k"

    def test_rejected_credential_marked_invalid(self, verifying_service, whoami, memory_store, sample_tenant_id):
        created = verifying_service.create_instance(sample_tenant_id, VERIFIED_DEFINITION_ID, {"apiKey": "k"})
        whoami.status_code = 403

        with pytest.raises(AuthError) as exc_info:
            verifying_service.validate_instance(sample_tenant_id, created.instance_id)

        assert exc_info.value.reason is AuthErrorReason.INVALID_CREDENTIAL
        assert memory_store.get(sample_tenant_id, created.instance_id).status is CredentialStatus.INVALID

    def test_rejection_reported_when_status_write_conflicts(
        self, verifying_service, whoami, memory_store, sample_tenant_id
    ):
        created = verifying_service.create_instance(sample_tenant_id, VERIFIED_DEFINITION_ID, {"apiKey": "k"})
        whoami.status_code = 403

        with patch.object(memory_store, "put", side_effect=conflict("CredentialInstance", 1, 2)):
            with pytest.raises(AuthError) as exc_info:
                verifying_service.validate_instance(sample_tenant_id, created.instance_id)

        assert exc_info.value.reason is AuthErrorReason.INVALID_CREDENTIAL
        assert memory_store.get(sample_tenant_id, created.instance_id).status is CredentialStatus.ACTIVE

    def test_outage_leaves_status_alone(self, verifying_service, whoami, memory_store, sample_tenant_id):
        created = verifying_service.create_instance(sample_tenant_id, VERIFIED_DEFINITION_ID, {"apiKey": "k"})
        whoami.status_code = 503

        with pytest.raises(AuthError) as exc_info:
            verifying_service.validate_instance(sample_tenant_id, created.instance_id)

        assert exc_info.value.retryable
        assert memory_store.get(sample_tenant_id, created.instance_id).status is CredentialStatus.ACTIVE

    def test_definition_without_validate_hook(self, service, sample_tenant_id):
        created = service.create_instance(sample_tenant_id, API_KEY_DEFINITION_ID, {"apiKey": "k"})

        result = service.validate_instance(sample_tenant_id, created.instance_id)

        assert result == created

    def test_revoked_instance_cannot_be_validated(self, verifying_service, whoami, sample_tenant_id):
        created = verifying_service.create_instance(sample_tenant_id, VERIFIED_DEFINITION_ID, {"apiKey": "k"})
        verifying_service.revoke_instance(sample_tenant_id, created.instance_id)

        with pytest.raises(CredentialUnusableError):
            verifying_service.validate_instance(sample_tenant_id, created.instance_id)
        assert whoami.requests == []


class TestReauthenticate:
    """Test replacing an instance's values."""

    def test_invalid_instance_becomes_active(self, service, resolver, memory_store, sample_tenant_id):
        created = service.create_instance(sample_tenant_id, API_KEY_DEFINITION_ID, {"apiKey": "old"})
        stored = memory_store.get(sample_tenant_id, created.instance_id)
        memory_store.put(stored.model_copy(update={"status": CredentialStatus.INVALID}))

        replaced = service.reauthenticate(sample_tenant_id, created.instance_id, {"apiKey": "new"})

        assert replaced.instance_id == created.instance_id
        assert replaced.status is CredentialStatus.ACTIVE
        assert resolver.resolve_credential(sample_tenant_id, created.instance_id)["apiKey"] == "new"

    def test_new_values_are_validated(self, service, sample_tenant_id):
        created = service.create_instance(sample_tenant_id, API_KEY_DEFINITION_ID, {"apiKey": "old"})

        with pytest.raises(ValidationError):
            service.reauthenticate(sample_tenant_id, created.instance_id, {"apiKey": "  "})

    def test_revoked_instance_stays_revoked(self, service, sample_tenant_id):
        created = service.create_instance(sample_tenant_id, API_KEY_DEFINITION_ID, {"apiKey": "old"})
        service.revoke_instance(sample_tenant_id, created.instance_id)

        with pytest.raises(CredentialUnusableError) as exc_info:
            service.reauthenticate(sample_tenant_id, created.instance_id, {"apiKey": "new"})

        assert exc_info.value.reason == "revoked"

    def test_resets_fixed_ttl_expiry(self, service, clock, sample_tenant_id):
        created = service.create_instance(
            sample_tenant_id, OAUTH_DEFINITION_ID, {"accessToken": "a", "refreshToken": "r"}
        )
        clock.advance(7200)

        replaced = service.reauthenticate(
            sample_tenant_id, created.instance_id, {"accessToken": "a2", "refreshToken": "r2"}
        )

        assert replaced.expires_at == clock.now + timedelta(seconds=3600)


class TestClose:
    def test_close_shuts_down_own_hook_runner(self, memory_store, registry, cipher):
        own_service = CredentialService(store=memory_store, registry=registry, cipher=cipher)

        with patch.object(own_service.hook_runner, "shutdown") as shutdown:
            own_service.close()

        shutdown.assert_called_once_with(wait=False)
