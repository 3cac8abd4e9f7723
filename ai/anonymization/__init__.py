"""
Findings Pseudonymization Module.

Protects names, identifiers, amounts and locations in audit findings before
they are sent to an external AI service, and restores them in the output.

Components:
- detector.py: Pattern and allowlist based extraction of sensitive values
- pseudonyms.py: Deterministic pseudonym labels per (category, ordinal)
- mapping_store.py: Encrypted, session-scoped, expiring mapping persistence
- replacement.py: Longest-match substitution in both directions
- sweeper.py: Deletion of expired mappings
- service.py: pseudonymize_findings / depseudonymize_data entry points
"""

from ai.anonymization.detector import DetectionRules, ExtractedValues, SensitiveDataExtractor
from ai.anonymization.errors import (
    InvalidArgumentError,
    MappingStoreError,
    MappingsNotFoundError,
    PseudonymizationError,
)
from ai.anonymization.mapping_store import MappingResult, MappingStore, ReverseLookup
from ai.anonymization.pseudonyms import generate_pseudonym
from ai.anonymization.replacement import apply_forward, apply_reverse, pseudonymize_record
from ai.anonymization.service import PseudonymizationService
from ai.anonymization.sweeper import ExpirySweeper

__all__ = [
    'DetectionRules',
    'ExtractedValues',
    'SensitiveDataExtractor',
    'InvalidArgumentError',
    'MappingStoreError',
    'MappingsNotFoundError',
    'PseudonymizationError',
    'MappingResult',
    'MappingStore',
    'ReverseLookup',
    'generate_pseudonym',
    'apply_forward',
    'apply_reverse',
    'pseudonymize_record',
    'PseudonymizationService',
    'ExpirySweeper',
]
