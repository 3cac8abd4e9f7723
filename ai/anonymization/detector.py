"""
Sensitive data detection for audit findings.

Extraction is purely syntactic:
- Names and locations come verbatim from a closed allowlist of fields
- Identifiers and amounts are matched by regular expression in free-text fields

The regex set is a heuristic. A six-digit reference that is not sensitive
will be pseudonymized, and an identifier format the pattern does not
anticipate will pass through. Both patterns are configurable.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Pattern, Set, Tuple

from models import MappingCategory


DEFAULT_PERSON_FIELDS = ('executor', 'reviewer', 'manager', 'responsiblePerson', 'reviewerPerson')
DEFAULT_LOCATION_FIELDS = ('location',)
DEFAULT_TEXT_FIELDS = (
    'findingDescription',
    'description',
    'rootCause',
    'impactDescription',
    'managementResponse',
    'actionPlan',
    'notes',
)
DEFAULT_REPLACEMENT_FIELDS = (
    'findingTitle',
    'title',
    'findingDescription',
    'description',
    'rootCause',
    'impactDescription',
    'recommendation',
    'managementResponse',
    'actionPlan',
    'notes',
) + DEFAULT_PERSON_FIELDS + DEFAULT_LOCATION_FIELDS

# Two or more capitals followed by three or more digits, or a bare run of six+ digits
DEFAULT_IDENTIFIER_PATTERN = r'\b[A-Z]{2,}\d{3,}\b|\b\d{6,}\b'

# $-prefixed number, or grouped number followed by a currency code or word.
# Compiled case-insensitive.
DEFAULT_AMOUNT_PATTERN = (
    r'\$[\d,]+(?:\.\d{2})?'
    r'|\b\d{1,3}(?:,\d{3})*(?:\.\d{2})?\s*(?:USD|EUR|IDR|SGD|GBP|dollars?|rupiah)\b'
)

IDENTIFIER_FLAGS = 0
AMOUNT_FLAGS = re.IGNORECASE


@dataclass(frozen=True)
class DetectionRules:
    """Field allowlists and patterns driving extraction and replacement."""

    person_fields: Tuple[str, ...] = DEFAULT_PERSON_FIELDS
    location_fields: Tuple[str, ...] = DEFAULT_LOCATION_FIELDS
    text_fields: Tuple[str, ...] = DEFAULT_TEXT_FIELDS
    replacement_fields: Tuple[str, ...] = DEFAULT_REPLACEMENT_FIELDS
    identifier_pattern: Pattern = field(
        default_factory=lambda: re.compile(DEFAULT_IDENTIFIER_PATTERN, IDENTIFIER_FLAGS)
    )
    amount_pattern: Pattern = field(
        default_factory=lambda: re.compile(DEFAULT_AMOUNT_PATTERN, AMOUNT_FLAGS)
    )


@dataclass
class ExtractedValues:
    """Candidate plaintext values per category, disjoint across categories."""

    names: Set[str] = field(default_factory=set)
    identifiers: Set[str] = field(default_factory=set)
    amounts: Set[str] = field(default_factory=set)
    locations: Set[str] = field(default_factory=set)

    def by_category(self) -> List[Tuple[MappingCategory, Set[str]]]:
        """Categories in precedence order."""
        return [
            (MappingCategory.NAME, self.names),
            (MappingCategory.IDENTIFIER, self.identifiers),
            (MappingCategory.AMOUNT, self.amounts),
            (MappingCategory.LOCATION, self.locations),
        ]

    def total(self) -> int:
        return sum(len(values) for _, values in self.by_category())


class SensitiveDataExtractor:
    """Collect names, identifiers, amounts and locations from finding records."""

    def __init__(self, rules: DetectionRules = None):
        self.rules = rules or DetectionRules()

    def extract(self, records: Iterable[Dict]) -> ExtractedValues:
        """
        Scan records and return candidate sensitive values.

        A value matched by more than one category is kept only in the first
        one by precedence: name > identifier > amount > location.

        Args:
            records: Finding dicts; anything that is not a dict is ignored

        Returns:
            ExtractedValues with disjoint sets
        """
        names: Set[str] = set()
        identifiers: Set[str] = set()
        amounts: Set[str] = set()
        locations: Set[str] = set()

        for record in records:
            if not isinstance(record, dict):
                continue

            names.update(self._field_values(record, self.rules.person_fields))
            locations.update(self._field_values(record, self.rules.location_fields))

            for text in self._texts(record):
                identifiers.update(self._matches(self.rules.identifier_pattern, text))
                amounts.update(self._matches(self.rules.amount_pattern, text))

        identifiers -= names
        amounts -= names | identifiers
        locations -= names | identifiers | amounts

        return ExtractedValues(names=names, identifiers=identifiers, amounts=amounts, locations=locations)

    @staticmethod
    def _field_values(record, fields):
        for name in fields:
            value = record.get(name)
            if isinstance(value, str) and value.strip():
                yield value.strip()

    def _texts(self, record):
        for name in self.rules.text_fields:
            value = record.get(name)
            if isinstance(value, str) and value:
                yield value

    @staticmethod
    def _matches(pattern, text):
        for match in pattern.finditer(text):
            value = match.group(0).strip()
            if value:
                yield value
