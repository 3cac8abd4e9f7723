"""
Pseudonymization Configuration Management.

Runtime settings live in the SystemConfig table so operators can change
them without a deploy:
1. Retention window and sweep batch size
2. Detection patterns (identifier, amount)
3. Field allowlists (person, location, free text, replacement)

Anything unset or invalid falls back to the built-in default.
"""

import logging
import re
from typing import Any, Dict, Optional, Tuple

from models import SystemConfig
from ai.anonymization.detector import (
    AMOUNT_FLAGS,
    DEFAULT_AMOUNT_PATTERN,
    DEFAULT_IDENTIFIER_PATTERN,
    DEFAULT_LOCATION_FIELDS,
    DEFAULT_PERSON_FIELDS,
    DEFAULT_REPLACEMENT_FIELDS,
    DEFAULT_TEXT_FIELDS,
    IDENTIFIER_FLAGS,
    DetectionRules,
)

logger = logging.getLogger(__name__)


class PseudonymizationConfig:
    """Pseudonymization settings read from SystemConfig."""

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @staticmethod
    def get_retention_days() -> int:
        """Days a new mapping lives before the sweeper may delete it."""
        days = SystemConfig.get_int(SystemConfig.KEY_RETENTION_DAYS, SystemConfig.DEFAULT_RETENTION_DAYS)
        if days < 1:
            logger.warning(f"Ignoring invalid retention of {days} days")
            return SystemConfig.DEFAULT_RETENTION_DAYS
        return days

    @staticmethod
    def get_sweep_batch_size() -> int:
        size = SystemConfig.get_int(SystemConfig.KEY_SWEEP_BATCH_SIZE, SystemConfig.DEFAULT_SWEEP_BATCH_SIZE)
        if size < 1:
            logger.warning(f"Ignoring invalid sweep batch size {size}")
            return SystemConfig.DEFAULT_SWEEP_BATCH_SIZE
        return size

    # =========================================================================
    # Detection
    # =========================================================================

    @staticmethod
    def _get_pattern(key: str, default: str, flags: int):
        configured = SystemConfig.get(key)
        if configured:
            try:
                return re.compile(configured, flags)
            except re.error as e:
                logger.warning(f"Invalid regex in {key} ({e}); using default")
        return re.compile(default, flags)

    @staticmethod
    def _get_fields(key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
        configured = SystemConfig.get(key)
        if not configured:
            return default
        fields = tuple(f.strip() for f in configured.split(',') if f.strip())
        return fields or default

    @staticmethod
    def get_identifier_pattern():
        return PseudonymizationConfig._get_pattern(
            SystemConfig.KEY_IDENTIFIER_PATTERN, DEFAULT_IDENTIFIER_PATTERN, IDENTIFIER_FLAGS
        )

    @staticmethod
    def get_amount_pattern():
        return PseudonymizationConfig._get_pattern(
            SystemConfig.KEY_AMOUNT_PATTERN, DEFAULT_AMOUNT_PATTERN, AMOUNT_FLAGS
        )

    @staticmethod
    def get_detection_rules() -> DetectionRules:
        """Build detection rules from the current configuration."""
        get_fields = PseudonymizationConfig._get_fields
        return DetectionRules(
            person_fields=get_fields(SystemConfig.KEY_PERSON_FIELDS, DEFAULT_PERSON_FIELDS),
            location_fields=get_fields(SystemConfig.KEY_LOCATION_FIELDS, DEFAULT_LOCATION_FIELDS),
            text_fields=get_fields(SystemConfig.KEY_TEXT_FIELDS, DEFAULT_TEXT_FIELDS),
            replacement_fields=get_fields(SystemConfig.KEY_REPLACEMENT_FIELDS, DEFAULT_REPLACEMENT_FIELDS),
            identifier_pattern=PseudonymizationConfig.get_identifier_pattern(),
            amount_pattern=PseudonymizationConfig.get_amount_pattern(),
        )

    @staticmethod
    def set_config(key: str, value: str, description: Optional[str] = None) -> None:
        SystemConfig.set(key, value, description)

    @staticmethod
    def get_system_config() -> Dict[str, Any]:
        """All pseudonymization settings as a dictionary."""
        rules = PseudonymizationConfig.get_detection_rules()
        return {
            'retention_days': PseudonymizationConfig.get_retention_days(),
            'sweep_batch_size': PseudonymizationConfig.get_sweep_batch_size(),
            'identifier_pattern': rules.identifier_pattern.pattern,
            'amount_pattern': rules.amount_pattern.pattern,
            'person_fields': list(rules.person_fields),
            'location_fields': list(rules.location_fields),
            'text_fields': list(rules.text_fields),
            'replacement_fields': list(rules.replacement_fields),
        }
