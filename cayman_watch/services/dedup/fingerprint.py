"""Stable record fingerprints and near-duplicate title comparison.

The fingerprint input is ``"<kind>:" + "|".join(normalized natural key)``
with the field order declared by each record variant. Changing the
separator, the normalization or a variant's key order changes every
fingerprint and re-admits records that were already stored.
"""

import hashlib

from rapidfuzz.distance import Levenshtein

from cayman_watch.models.records import RecordBase
from cayman_watch.utils.text import normalize_key_value, normalize_title

FINGERPRINT_SEPARATOR = "|"
NEAR_DUPLICATE_THRESHOLD = 0.85


def fingerprint_input(record: RecordBase) -> str:
    values = [normalize_key_value(value) for value in record.natural_key()]
    return f"{record.kind.value}:" + FINGERPRINT_SEPARATOR.join(values)


def fingerprint(record: RecordBase) -> str:
    """SHA-256 hex digest of a record's canonical natural key.

    Example:
        >>> a = GazetteNotice(entity_name="Alpha Ltd", liquidation_date="2024-03-05")
        >>> b = GazetteNotice(entity_name="ALPHA  LTD", liquidation_date="2024-03-05")
        >>> fingerprint(a) == fingerprint(b)
        True
    """
    return hashlib.sha256(fingerprint_input(record).encode("utf-8")).hexdigest()


def title_similarity(first: str, second: str) -> float:
    """1 minus the normalized Levenshtein distance of two normalized titles."""
    a = normalize_title(first)
    b = normalize_title(second)
    if not a and not b:
        return 1.0
    return Levenshtein.normalized_similarity(a, b)


def is_near_duplicate(
    first: str, second: str, threshold: float = NEAR_DUPLICATE_THRESHOLD
) -> bool:
    if not normalize_title(first) or not normalize_title(second):
        return False
    # Rounded so a similarity of exactly the threshold is not lost to float error
    return round(title_similarity(first, second), 9) >= threshold
