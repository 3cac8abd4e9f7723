"""
Azure Key Vault client for secure credential management.

Application secrets should be stored in Azure Key Vault:
- database-url: PostgreSQL connection string (optional, can use env var)
- mapping-encryption-key: Fernet key(s) protecting original values
- pseudonymization-api-keys: JSON document of hashed API keys per actor
- log-forwarding-api-key: OTLP backend credential

When AZURE_KEYVAULT_URL is not set the client never contacts Azure and every
lookup falls through to its environment variable.
"""
import logging
import os
from azure.keyvault.secrets import SecretClient
from azure.identity import DefaultAzureCredential

logger = logging.getLogger(__name__)


class KeyVaultClient:
    """Azure Key Vault client for secure credential management."""

    def __init__(self):
        self.vault_url = os.environ.get('AZURE_KEYVAULT_URL')
        self._client = None
        self._credential = None
        self._initialized = False
        self._init_error = None

    def _initialize(self):
        """Lazy initialization of Key Vault client.

        Re-attempts initialization if a previous attempt failed, since
        Azure credentials may become available later (e.g., after Azure CLI login).
        """
        if not self.vault_url:
            return False

        # If already successfully initialized, return True
        if self._initialized and self._client is not None:
            return True

        # Reset state for retry
        self._initialized = True
        self._init_error = None
        self._client = None
        self._credential = None

        try:
            self._credential = DefaultAzureCredential()
            self._client = SecretClient(vault_url=self.vault_url, credential=self._credential)
            logger.info(f"Azure Key Vault client initialized: {self.vault_url}")
            return True
        except Exception as e:
            self._init_error = str(e)
            logger.warning(f"Azure Key Vault not available: {e}. Using environment variables as fallback.")
            return False

    @property
    def is_available(self):
        """Check if Key Vault is available."""
        return self._initialize() and self._client is not None

    def get_secret(self, secret_name, fallback_env_var=None, default=None):
        """
        Get a secret from Key Vault with fallback to environment variable.

        Args:
            secret_name: Name of the secret in Key Vault
            fallback_env_var: Environment variable to use if Key Vault unavailable
            default: Default value if neither Key Vault nor env var has the secret

        Returns:
            The secret value, or default if not found
        """
        # Try Key Vault first
        if self._initialize() and self._client:
            try:
                secret = self._client.get_secret(secret_name)
                return secret.value
            except Exception as e:
                logger.debug(f"Secret '{secret_name}' not found in Key Vault: {e}")

        # Fallback to environment variable
        if fallback_env_var:
            env_value = os.environ.get(fallback_env_var)
            if env_value:
                logger.debug(f"Using '{fallback_env_var}' environment variable for '{secret_name}'")
                return env_value

        return default

    def get_database_url(self):
        """
        Get database URL from Key Vault or environment.

        Priority:
        1. Key Vault 'database-url'
        2. Environment variable 'DATABASE_URL'
        3. Default SQLite for local development
        """
        return self.get_secret(
            'database-url',
            fallback_env_var='DATABASE_URL',
            default='sqlite:///pseudonymization.db'
        )

    def get_mapping_encryption_key(self):
        """
        Get the mapping encryption key(s) from Key Vault or environment.

        Priority:
        1. Key Vault 'mapping-encryption-key'
        2. Environment variable 'MAPPING_ENCRYPTION_KEY'
        3. None (the app refuses to start)
        """
        return self.get_secret('mapping-encryption-key', fallback_env_var='MAPPING_ENCRYPTION_KEY')

    def get_api_keys_config(self):
        """
        Get the hashed API key registry (JSON) from Key Vault or environment.

        Priority:
        1. Key Vault 'pseudonymization-api-keys'
        2. Environment variable 'PSEUDONYMIZATION_API_KEYS'
        """
        return self.get_secret('pseudonymization-api-keys', fallback_env_var='PSEUDONYMIZATION_API_KEYS')

    def get_log_forwarding_api_key(self):
        """
        Get log forwarding (OTLP) API key from Key Vault or environment.

        Priority:
        1. Key Vault 'log-forwarding-api-key'
        2. Environment variable 'LOG_FORWARDING_API_KEY'
        3. None (log forwarding will check SystemConfig as fallback)
        """
        return self.get_secret('log-forwarding-api-key', fallback_env_var='LOG_FORWARDING_API_KEY')


# Global instance
keyvault_client = KeyVaultClient()
