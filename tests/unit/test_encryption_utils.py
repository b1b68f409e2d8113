"""
Unit tests for credential encryption.
"""

import pytest

from connection_core.config import SecurityConfig, reset_config
from connection_core.exceptions import CredentialUnusableError, ErrorCode, ServiceError
from connection_core.utils.encryption_utils import CredentialCipher, generate_master_key

DEFINITION_ID = "acme_connection_api-key"


class TestCredentialCipher:
    """Test field-level encryption with tenant-bound keys."""

    def test_round_trip(self, cipher):
        encrypted = cipher.encrypt_values("tenant-acme", DEFINITION_ID, {"apiKey": "sk_live_123"})

        assert list(encrypted) == ["apiKey"]
        assert "sk_live_123" not in encrypted["apiKey"]
        assert cipher.decrypt_values("tenant-acme", DEFINITION_ID, encrypted) == {"apiKey": "sk_live_123"}

    def test_same_value_encrypts_differently(self, cipher):
        first = cipher.encrypt_values("tenant-acme", DEFINITION_ID, {"apiKey": "k"})
        second = cipher.encrypt_values("tenant-acme", DEFINITION_ID, {"apiKey": "k"})

        assert first["apiKey"] != second["apiKey"]

    def test_ciphertext_bound_to_tenant(self, cipher):
        encrypted = cipher.encrypt_values("tenant-acme", DEFINITION_ID, {"apiKey": "k"})

        with pytest.raises(CredentialUnusableError) as exc_info:
            cipher.decrypt_values("tenant-globex", DEFINITION_ID, encrypted)

        assert exc_info.value.reason == "undecryptable"
        assert exc_info.value.context["field"] == "apiKey"

    def test_ciphertext_bound_to_definition(self, cipher):
        encrypted = cipher.encrypt_values("tenant-acme", DEFINITION_ID, {"apiKey": "k"})

        with pytest.raises(CredentialUnusableError):
            cipher.decrypt_values("tenant-acme", "acme_connection_other", encrypted)

    def test_key_rotation(self):
        old_key = generate_master_key()
        new_key = generate_master_key()
        old_cipher = CredentialCipher([old_key])
        rotated_cipher = CredentialCipher([new_key, old_key])
        encrypted = old_cipher.encrypt_values("tenant-acme", DEFINITION_ID, {"apiKey": "k"})

        assert rotated_cipher.decrypt_values("tenant-acme", DEFINITION_ID, encrypted) == {"apiKey": "k"}

        reencrypted = rotated_cipher.rotate_values("tenant-acme", DEFINITION_ID, encrypted)
        assert CredentialCipher([new_key]).decrypt_values("tenant-acme", DEFINITION_ID, reencrypted) == {
            "apiKey": "k"
        }

    def test_no_keys_configured(self):
        with pytest.raises(ServiceError) as exc_info:
            CredentialCipher([])

        assert exc_info.value.error_code == ErrorCode.CONFIGURATION_ERROR

    @pytest.mark.parametrize("bad_key", ["not base64 at all!", "c2hvcnQ="])
    def test_malformed_key(self, bad_key):
        with pytest.raises(ServiceError) as exc_info:
            CredentialCipher([bad_key])

        assert exc_info.value.context["key_index"] == 0
        assert bad_key not in str(exc_info.value.to_dict())

    def test_from_config(self):
        key = generate_master_key()
        cipher = CredentialCipher.from_config(SecurityConfig(encryption_keys=[key]))

        encrypted = cipher.encrypt_values("tenant-acme", DEFINITION_ID, {"apiKey": "k"})
        assert CredentialCipher([key]).decrypt_values("tenant-acme", DEFINITION_ID, encrypted) == {"apiKey": "k"}

    def test_from_environment(self, monkeypatch):
        key = generate_master_key()
        monkeypatch.setenv("CONNECTION_ENCRYPTION_KEYS", f" {key} ,")
        reset_config()

        cipher = CredentialCipher.from_config()

        encrypted = cipher.encrypt_values("tenant-acme", DEFINITION_ID, {"apiKey": "k"})
        assert cipher.decrypt_values("tenant-acme", DEFINITION_ID, encrypted) == {"apiKey": "k"}
