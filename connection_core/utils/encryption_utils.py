"""
Encryption utilities for credential storage.

Field values are encrypted one by one with Fernet. The key for a value is
derived with HKDF from a configured master key, bound to the tenant and the
connection definition, so a ciphertext copied into another tenant's record
does not decrypt. Several master keys may be configured: the first encrypts,
all of them decrypt, which allows rotation.
"""

import base64
from typing import Dict, List, Mapping, Optional, Sequence

from cryptography.fernet import Fernet, InvalidToken, MultiFernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..config import SecurityConfig, get_config
from ..exceptions import CredentialUnusableError, ErrorCode, ServiceError


def generate_master_key() -> str:
    """Create a new master key suitable for CONNECTION_ENCRYPTION_KEYS."""
    return Fernet.generate_key().decode()


def derive_key(master_key: bytes, tenant_id: str, key_suffix: str = "") -> bytes:
    """
    Derive a Fernet key for one tenant and data type.

    Args:
        master_key: Raw 32-byte master key material
        tenant_id: Tenant ID for key isolation
        key_suffix: Additional key suffix for different data types

    Returns:
        urlsafe-base64 encoded Fernet key
    """
    info = f"{tenant_id}_{key_suffix}" if key_suffix else tenant_id
    derived = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=info.encode("utf-8"),
    ).derive(master_key)
    return base64.urlsafe_b64encode(derived)


class CredentialCipher:
    """Encrypts and decrypts credential field values with tenant-bound keys."""

    def __init__(self, master_keys: Sequence[str]):
        if not master_keys:
            raise ServiceError(
                "No encryption keys configured for credential storage",
                error_code=ErrorCode.CONFIGURATION_ERROR,
                operation="credential_cipher_init",
            )
        self._master_keys: List[bytes] = []
        for index, key in enumerate(master_keys):
            try:
                raw = base64.urlsafe_b64decode(key.encode("ascii"))
            except (ValueError, UnicodeEncodeError) as e:
                raise ServiceError(
                    "Encryption key is not valid urlsafe base64",
                    error_code=ErrorCode.CONFIGURATION_ERROR,
                    operation="credential_cipher_init",
                    key_index=index,
                    cause=e,
                ) from e
            if len(raw) != 32:
                raise ServiceError(
                    "Encryption key must decode to 32 bytes",
                    error_code=ErrorCode.CONFIGURATION_ERROR,
                    operation="credential_cipher_init",
                    key_index=index,
                )
            self._master_keys.append(raw)

    @classmethod
    def from_config(cls, security: Optional[SecurityConfig] = None) -> "CredentialCipher":
        security = security or get_config().security
        return cls(security.encryption_keys)

    def _fernet(self, tenant_id: str, connection_definition_id: str) -> MultiFernet:
        suffix = f"cred_{connection_definition_id}"
        return MultiFernet(
            [Fernet(derive_key(master, tenant_id, suffix)) for master in self._master_keys]
        )

    def encrypt_values(
        self, tenant_id: str, connection_definition_id: str, values: Mapping[str, str]
    ) -> Dict[str, str]:
        """Encrypt every field value; field names stay readable."""
        fernet = self._fernet(tenant_id, connection_definition_id)
        return {
            name: fernet.encrypt(value.encode("utf-8")).decode("ascii")
            for name, value in values.items()
        }

    def decrypt_values(
        self, tenant_id: str, connection_definition_id: str, encrypted: Mapping[str, str]
    ) -> Dict[str, str]:
        """
        Decrypt every field value.

        Raises:
            CredentialUnusableError: If a value was encrypted with an unknown key
                or for another tenant/definition
        """
        fernet = self._fernet(tenant_id, connection_definition_id)
        decrypted: Dict[str, str] = {}
        for name, token in encrypted.items():
            try:
                decrypted[name] = fernet.decrypt(token.encode("ascii")).decode("utf-8")
            except InvalidToken as e:
                raise CredentialUnusableError(
                    "Stored credential cannot be decrypted with the configured keys",
                    reason="undecryptable",
                    tenant_id=tenant_id,
                    connection_definition_id=connection_definition_id,
                    field=name,
                    cause=e,
                ) from e
        return decrypted

    def rotate_values(
        self, tenant_id: str, connection_definition_id: str, encrypted: Mapping[str, str]
    ) -> Dict[str, str]:
        """Re-encrypt values under the primary key."""
        fernet = self._fernet(tenant_id, connection_definition_id)
        return {
            name: fernet.rotate(token.encode("ascii")).decode("ascii")
            for name, token in encrypted.items()
        }
