"""
Bidirectional text substitution between plaintext values and pseudonyms.

Keys are matched literally and claimed longest first: every occurrence of the
longest key is reserved before any shorter key is considered, and a shorter
key may only take text no longer key has reserved. All reserved spans are then
substituted in a single pass, so a substituted value is never rescanned.
A longer key therefore always survives intact, whether a shorter key is one
of its substrings ("John Doe" before "John", "Person_A1" before "Person_A")
or merely overlaps it ("Lee Kimberly" before "Jo Lee").
"""

from functools import singledispatch
from typing import Any, Dict, Iterable, Mapping, Tuple


def _order_keys(keys: Iterable[str]) -> Tuple[str, ...]:
    return tuple(sorted((k for k in keys if k), key=lambda k: (-len(k), k)))


def _claim_spans(text: str, ordered_keys: Iterable[str]):
    claimed = bytearray(len(text))
    spans = []
    for key in ordered_keys:
        size = len(key)
        start = text.find(key)
        while start != -1:
            end = start + size
            if any(claimed[start:end]):
                start = text.find(key, start + 1)
                continue
            claimed[start:end] = b'\x01' * size
            spans.append((start, end, key))
            start = text.find(key, end)
    spans.sort()
    return spans


def replace_all(text: str, mappings: Mapping[str, str], keys=None) -> str:
    """Replace every occurrence of each mapping key in text with its value."""
    if not text or not mappings:
        return text
    keys = keys if keys is not None else _order_keys(mappings.keys())
    spans = _claim_spans(text, keys)
    if not spans:
        return text

    parts = []
    position = 0
    for start, end, key in spans:
        parts.append(text[position:start])
        parts.append(mappings[key])
        position = end
    parts.append(text[position:])
    return ''.join(parts)


def apply_forward(text: str, mappings: Mapping[str, str]) -> str:
    """Replace plaintext values with their pseudonyms."""
    return replace_all(text, mappings)


def pseudonymize_record(record: Dict, mappings: Mapping[str, str], fields: Iterable[str], keys=None) -> Dict:
    """
    Return a shallow copy of record with the given string fields pseudonymized.

    Fields that are absent or not strings are copied unchanged, as is every
    field not listed.
    """
    if not isinstance(record, dict):
        return record

    keys = keys if keys is not None else _order_keys(mappings.keys())
    result = dict(record)
    if not keys:
        return result

    for name in fields:
        value = result.get(name)
        if isinstance(value, str) and value:
            result[name] = replace_all(value, mappings, keys)
    return result


def pseudonymize_records(records, mappings: Mapping[str, str], fields: Iterable[str]):
    """Pseudonymize a batch of records, ordering the keys once."""
    fields = tuple(fields)
    keys = _order_keys(mappings.keys())
    return [pseudonymize_record(record, mappings, fields, keys) for record in records]


# =============================================================================
# Reverse direction: recursive over nested JSON-like data
# =============================================================================

@singledispatch
def _restore(value: Any, mappings, keys):
    # Numbers, booleans, None and any other leaf pass through
    return value


@_restore.register(str)
def _(value, mappings, keys):
    return replace_all(value, mappings, keys)


@_restore.register(list)
def _(value, mappings, keys):
    return [_restore(item, mappings, keys) for item in value]


@_restore.register(tuple)
def _(value, mappings, keys):
    return tuple(_restore(item, mappings, keys) for item in value)


@_restore.register(dict)
def _(value, mappings, keys):
    return {key: _restore(item, mappings, keys) for key, item in value.items()}


def apply_reverse(value: Any, reverse_mappings: Mapping[str, str]) -> Any:
    """
    Replace pseudonyms with their original values anywhere in value.

    Strings are substituted; lists, tuples and dict values are processed
    recursively; every other type is returned as is. Dict keys are left alone.
    """
    keys = _order_keys(reverse_mappings.keys())
    if not keys:
        return value
    return _restore(value, reverse_mappings, keys)
