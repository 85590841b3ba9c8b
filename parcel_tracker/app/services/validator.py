"""
Tracking ID validation.

Royal Mail style identifiers: 2 letters + 9 digits + 2 letters
(e.g. AB123456789GB).
"""

import re

TRACKING_ID_PATTERN = re.compile(r"[A-Z]{2}[0-9]{9}[A-Z]{2}")


def normalize_tracking_id(raw: str) -> str:
    """Trim surrounding whitespace and upper-case."""
    return raw.strip().upper()


def validate_tracking_id(raw) -> bool:
    """
    Check a tracking ID against the carrier format.

    Never raises: anything that is not a string, or does not match
    exactly after normalization, is simply invalid.
    """
    if not isinstance(raw, str):
        return False
    return TRACKING_ID_PATTERN.fullmatch(normalize_tracking_id(raw)) is not None
