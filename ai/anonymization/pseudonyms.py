"""
Pseudonym label generation.

Labels are derived from (category, ordinal) only, so the same pair always
yields the same label. Each category has its own prefix, which keeps the
namespaces disjoint for depseudonymization.
"""

import string
from typing import Union

from models import MappingCategory

PREFIXES = {
    MappingCategory.NAME: 'Person_',
    MappingCategory.IDENTIFIER: 'ID_',
    MappingCategory.AMOUNT: 'Amount_',
    MappingCategory.LOCATION: 'Location_',
}


def generate_pseudonym(category: Union[MappingCategory, str], index: int) -> str:
    """
    Generate the pseudonym for a zero-based ordinal within a category.

    Names cycle through A-Z and then append the overflow count
    (index 0 -> Person_A, index 26 -> Person_A1, index 53 -> Person_B2).
    Other categories use the 1-based ordinal padded to three digits
    (ID_001, Amount_012, Location_100).

    Raises:
        ValueError: If the category is unknown or the index is negative
    """
    category = MappingCategory(category)
    if index < 0:
        raise ValueError(f"Pseudonym index must be non-negative, got {index}")

    prefix = PREFIXES[category]
    if category is MappingCategory.NAME:
        letter = string.ascii_uppercase[index % 26]
        overflow = index // 26
        return f"{prefix}{letter}{overflow or ''}"

    return f"{prefix}{index + 1:03d}"
