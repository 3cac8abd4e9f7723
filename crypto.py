"""
Cryptographic utilities for pseudonym mapping storage.

Original sensitive values are encrypted before they reach the database and
are only ever decrypted inside the mapping store.

Security Design:
- Uses Fernet symmetric encryption (AES-128-CBC with HMAC-SHA256)
- Encryption key stored in Azure Key Vault, environment variable as fallback
- Several comma-separated keys may be configured for rotation: the first key
  encrypts, every key is tried for decryption (MultiFernet)
- Tampered or foreign ciphertext fails authentication and raises DecryptionError
"""
import logging
from cryptography.fernet import Fernet, MultiFernet, InvalidToken

logger = logging.getLogger(__name__)


class EncryptionKeyError(Exception):
    """No usable encryption key is configured."""


class DecryptionError(Exception):
    """A ciphertext could not be authenticated or decoded."""


def generate_encryption_key():
    """
    Generate a new Fernet encryption key.

    Use this to create a key to store in Azure Key Vault:
        python -c "from crypto import generate_encryption_key; print(generate_encryption_key())"

    Then store in Key Vault:
        az keyvault secret set --vault-name <vault> --name mapping-encryption-key --value "KEY_HERE"

    Returns:
        str: A new Fernet key (URL-safe base64 encoded)
    """
    return Fernet.generate_key().decode('utf-8')


def _split_keys(keys):
    if isinstance(keys, (str, bytes)):
        if isinstance(keys, bytes):
            keys = keys.decode('utf-8')
        keys = keys.split(',')
    return [k.strip() for k in keys if k and k.strip()]


class MappingCipher:
    """Encrypt/decrypt single string values with authenticated encryption."""

    def __init__(self, keys):
        """
        Args:
            keys: A Fernet key, a comma-separated string of keys, or a list of
                  keys. The first key is used for encryption.

        Raises:
            EncryptionKeyError: If no key is given or a key is malformed
        """
        key_list = _split_keys(keys) if keys else []
        if not key_list:
            raise EncryptionKeyError("No mapping encryption key configured")

        try:
            fernets = [Fernet(key.encode('utf-8')) for key in key_list]
        except ValueError:
            # Never echo key material
            raise EncryptionKeyError("Mapping encryption key is malformed") from None

        self._fernet = MultiFernet(fernets)
        self.key_count = len(fernets)

    @classmethod
    def from_keyvault(cls):
        """
        Build a cipher from Key Vault or the environment.

        Priority:
        1. Key Vault 'mapping-encryption-key'
        2. Environment variable 'MAPPING_ENCRYPTION_KEY'
        """
        from keyvault_client import keyvault_client

        keys = keyvault_client.get_mapping_encryption_key()
        if not keys:
            logger.error("Mapping encryption key not found in Key Vault or environment")
        return cls(keys)

    def encrypt(self, plaintext):
        """
        Encrypt a value for storage.

        Args:
            plaintext: The string to encrypt

        Returns:
            str: Fernet token (URL-safe base64 text)
        """
        return self._fernet.encrypt(plaintext.encode('utf-8')).decode('utf-8')

    def decrypt(self, ciphertext):
        """
        Decrypt a stored value.

        Args:
            ciphertext: Fernet token produced by encrypt()

        Returns:
            str: The original plaintext

        Raises:
            DecryptionError: If the token is corrupted, tampered with, or was
                             encrypted under a key that is no longer configured
        """
        if not isinstance(ciphertext, str) or not ciphertext:
            raise DecryptionError("Ciphertext is empty or not text")

        try:
            return self._fernet.decrypt(ciphertext.encode('utf-8')).decode('utf-8')
        except InvalidToken:
            raise DecryptionError("Invalid encryption token - value may be corrupted or key rotated") from None
        except (ValueError, TypeError) as e:
            raise DecryptionError(f"Undecodable ciphertext ({type(e).__name__})") from None
