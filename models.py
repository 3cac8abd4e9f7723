import enum
import uuid
from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow():
    """Naive UTC timestamp, the storage convention for every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _uuid():
    return str(uuid.uuid4())


# ============================================================================
# ENUMS
# ============================================================================

class MappingCategory(enum.Enum):
    """Sensitive-value classes; each has its own pseudonym namespace."""
    NAME = 'name'
    IDENTIFIER = 'identifier'
    AMOUNT = 'amount'
    LOCATION = 'location'


class SystemConfig(db.Model):
    """Runtime configuration managed by operators."""

    __tablename__ = 'system_config'

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), nullable=False, unique=True)
    value = db.Column(db.String(500), nullable=True)
    description = db.Column(db.String(500), nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Pseudonymization configuration keys
    KEY_RETENTION_DAYS = 'pseudonymization_retention_days'
    KEY_SWEEP_BATCH_SIZE = 'pseudonymization_sweep_batch_size'
    KEY_IDENTIFIER_PATTERN = 'pseudonymization_identifier_pattern'
    KEY_AMOUNT_PATTERN = 'pseudonymization_amount_pattern'
    KEY_PERSON_FIELDS = 'pseudonymization_person_fields'
    KEY_LOCATION_FIELDS = 'pseudonymization_location_fields'
    KEY_TEXT_FIELDS = 'pseudonymization_text_fields'
    KEY_REPLACEMENT_FIELDS = 'pseudonymization_replacement_fields'

    # Defaults
    DEFAULT_RETENTION_DAYS = 30
    DEFAULT_SWEEP_BATCH_SIZE = 500

    # Log forwarding configuration keys (OpenTelemetry/OTLP)
    KEY_LOG_FORWARDING_ENABLED = 'log_forwarding_enabled'
    KEY_LOG_FORWARDING_ENDPOINT_URL = 'log_forwarding_endpoint_url'
    KEY_LOG_FORWARDING_AUTH_TYPE = 'log_forwarding_auth_type'
    KEY_LOG_FORWARDING_AUTH_HEADER_NAME = 'log_forwarding_auth_header_name'
    KEY_LOG_FORWARDING_API_KEY = 'log_forwarding_api_key'  # Fallback storage (prefer Key Vault)
    KEY_LOG_FORWARDING_LOG_LEVEL = 'log_forwarding_log_level'
    KEY_LOG_FORWARDING_SERVICE_NAME = 'log_forwarding_service_name'
    KEY_LOG_FORWARDING_ENVIRONMENT = 'log_forwarding_environment'

    # Log forwarding defaults
    DEFAULT_LOG_FORWARDING_ENABLED = False
    DEFAULT_LOG_FORWARDING_AUTH_TYPE = 'api_key'  # api_key, bearer, header, none
    DEFAULT_LOG_FORWARDING_LOG_LEVEL = 'INFO'  # DEBUG, INFO, WARNING, ERROR
    DEFAULT_LOG_FORWARDING_SERVICE_NAME = 'findings-pseudonymization'
    DEFAULT_LOG_FORWARDING_ENVIRONMENT = 'production'

    @staticmethod
    def get(key, default=None):
        """Get a configuration value."""
        config = SystemConfig.query.filter_by(key=key).first()
        if config:
            return config.value
        return default

    @staticmethod
    def get_bool(key, default=False):
        """Get a configuration value as boolean."""
        value = SystemConfig.get(key)
        if value is None:
            return default
        return value.lower() in ('true', '1', 'yes', 'on')

    @staticmethod
    def get_int(key, default=0):
        """Get a configuration value as integer."""
        value = SystemConfig.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except (ValueError, TypeError):
            return default

    @staticmethod
    def set(key, value, description=None):
        """Set a configuration value."""
        config = SystemConfig.query.filter_by(key=key).first()
        if config:
            config.value = str(value)
            if description:
                config.description = description
        else:
            config = SystemConfig(key=key, value=str(value), description=description)
            db.session.add(config)
        db.session.commit()
        return config

    def to_dict(self):
        return {
            'id': self.id,
            'key': self.key,
            'value': self.value,
            'description': self.description,
            'updated_at': self.updated_at.isoformat()
        }


class PseudonymMapping(db.Model):
    """
    Encrypted association between one plaintext value and its pseudonym.

    Key invariants:
    - The plaintext is never stored; only its ciphertext
    - pseudonym_value is unique within (session_id, category)
    - Rows are only deleted by the expiry sweeper
    """
    __tablename__ = 'pseudonym_mappings'
    __table_args__ = (
        db.UniqueConstraint('session_id', 'category', 'pseudonym_value',
                            name='uq_pseudonym_mappings_session_category_pseudonym'),
        db.Index('ix_pseudonym_mappings_session_category', 'session_id', 'category'),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    session_id = db.Column(db.String(255), nullable=False, index=True)
    category = db.Column(db.Enum(MappingCategory), nullable=False)
    original_value_encrypted = db.Column(db.Text, nullable=False)
    pseudonym_value = db.Column(db.String(64), nullable=False)
    ordinal = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    last_accessed_at = db.Column(db.DateTime, nullable=True)
    usage_count = db.Column(db.Integer, nullable=False, default=0)
    created_by = db.Column(db.String(255), nullable=False)

    def is_expired(self, now=None):
        return self.expires_at <= (now or utcnow())

    def to_dict(self):
        """Serialize without the ciphertext."""
        return {
            'id': self.id,
            'session_id': self.session_id,
            'category': self.category.value,
            'pseudonym_value': self.pseudonym_value,
            'ordinal': self.ordinal,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'last_accessed_at': self.last_accessed_at.isoformat() if self.last_accessed_at else None,
            'usage_count': self.usage_count,
            'created_by': self.created_by,
        }

    def __repr__(self):
        return f'<PseudonymMapping {self.id} {self.category.value}:{self.pseudonym_value}>'


class MappingSequence(db.Model):
    """
    Ordinal allocator for one (session_id, category).

    Survives expiry sweeps so an ordinal is never handed out twice.
    """
    __tablename__ = 'mapping_sequences'

    session_id = db.Column(db.String(255), primary_key=True)
    category = db.Column(db.Enum(MappingCategory), primary_key=True)
    next_ordinal = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f'<MappingSequence {self.session_id}/{self.category.value} next={self.next_ordinal}>'


class AuditLog(db.Model):
    """
    Immutable audit log for mapping lifecycle and API operations.

    Key invariants:
    - Entries are immutable (no update/delete)
    - Details never contain plaintext or ciphertext
    """
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(db.String(255), nullable=False)
    action = db.Column(db.String(50), nullable=False, index=True)
    resource_type = db.Column(db.String(50), nullable=False)
    resource_id = db.Column(db.String(255), nullable=True)
    details = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    # Action constants
    ACTION_MAPPING_CREATE = 'mapping_create'
    ACTION_MAPPING_REUSE = 'mapping_reuse'
    ACTION_MAPPING_ACCESS = 'mapping_access'
    ACTION_MAPPING_DECRYPTION_ERROR = 'mapping_decryption_error'
    ACTION_MAPPING_CLEANUP = 'mapping_cleanup'
    ACTION_PSEUDONYMIZE = 'pseudonymize'
    ACTION_DEPSEUDONYMIZE = 'depseudonymize'

    # Resource type constants
    RESOURCE_MAPPING = 'mapping'
    RESOURCE_FINDING = 'finding'
    RESOURCE_AI_RESULT = 'ai_result'

    SYSTEM_ACTOR = 'system'

    def to_dict(self):
        return {
            'id': self.id,
            'actor_id': self.actor_id,
            'action': self.action,
            'resource_type': self.resource_type,
            'resource_id': self.resource_id,
            'details': self.details,
            'created_at': self.created_at.isoformat(),
        }
