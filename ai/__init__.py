"""
AI Integration Module for Audit Findings.

Findings are pseudonymized before they leave for an external AI service and
the AI output is depseudonymized on return:
- anonymization/: extraction, mapping storage, replacement, expiry
- api/: REST endpoints
- config.py: runtime settings from SystemConfig
- services.py: per-request construction of the collaborators
"""

from ai.config import PseudonymizationConfig
from ai.services import (
    build_expiry_sweeper,
    build_mapping_store,
    build_pseudonymization_service,
)

__all__ = [
    'PseudonymizationConfig',
    'build_expiry_sweeper',
    'build_mapping_store',
    'build_pseudonymization_service',
]
