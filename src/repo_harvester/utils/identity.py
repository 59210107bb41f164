"""Contributor identity helpers.

Normalisation and the ``ignored`` classification are pure functions of the
identity string so the flag stored at insertion time is reproducible.
"""

import re
from typing import Iterable, Optional

DEFAULT_IGNORE_PATTERNS = ("noreply",)

# local@domain.tld, no whitespace and exactly one "@"
_ADDRESS_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_identity(raw: Optional[str]) -> Optional[str]:
    """Normalize a raw commit e-mail into a store identity.

    Args:
        raw: E-mail as found in commit metadata

    Returns:
        Stripped, lower-cased identity, or None if nothing usable remains
    """
    if raw is None:
        return None
    identity = raw.strip().lower()
    return identity or None


def has_address_shape(identity: str) -> bool:
    return bool(_ADDRESS_PATTERN.match(identity))


def is_ignored_identity(
    identity: str, patterns: Iterable[str] = DEFAULT_IGNORE_PATTERNS
) -> bool:
    """Classify an identity as non-actionable.

    Args:
        identity: Normalized identity string
        patterns: Substrings marking automated or placeholder addresses

    Returns:
        True if the identity matches a pattern (case-insensitive) or lacks
        the canonical local@domain shape
    """
    lowered = identity.lower()
    if any(p.lower() in lowered for p in patterns if p):
        return True
    return not has_address_shape(lowered)
