"""Reference codes printed on every outbound page (``FX-YYYY-NNNNNN``).

The code travels through paper and a scanner, so parsing tolerates common
noise: lowercase, spaces or dashes of any kind around the separators, and
the letter ``O`` read in place of a zero.
"""

import re
import secrets
from datetime import datetime, timezone
from typing import Optional

REFERENCE_ID_PREFIX = "FX"

_CANONICAL = re.compile(r"^FX-\d{4}-\d{6}$")

# Digit groups allow O/o for 0 confusions; separators allow any dash or whitespace.
_NOISY = re.compile(
    r"F\s*X\s*[-‐-―\s]\s*([0-9Oo]{4})\s*[-‐-―\s]\s*([0-9Oo]{6})(?![0-9])",
    re.IGNORECASE,
)


def generate_reference_id(now: Optional[datetime] = None) -> str:
    """Generate a reference id for the current (or given) year."""
    year = (now or datetime.now(timezone.utc)).year
    sequence = secrets.randbelow(1_000_000)
    return f"{REFERENCE_ID_PREFIX}-{year}-{sequence:06d}"


def is_reference_id(value: Optional[str]) -> bool:
    return bool(value) and bool(_CANONICAL.match(value))


def extract_reference_id(text: Optional[str]) -> Optional[str]:
    """Find the first reference code in re-scanned text and return it canonicalised."""
    if not text:
        return None
    match = _NOISY.search(text)
    if not match:
        return None
    year, sequence = (group.upper().replace("O", "0") for group in match.groups())
    return f"{REFERENCE_ID_PREFIX}-{year}-{sequence}"
