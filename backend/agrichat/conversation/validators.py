# /agrichat/conversation/validators.py

import math
import re
from datetime import date
from typing import Any, Dict, Optional

# Parsers for typed step input. Each returns None when the input is not
# acceptable so the caller can re-prompt without advancing.

SKIP = "skip"
ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def is_skip(text: Optional[str]) -> bool:
    return (text or "").strip().lower() == SKIP


def _number(text: Optional[str]) -> Optional[float]:
    digits = re.sub(r"[^0-9.]", "", text or "")
    if not digits:
        return None
    try:
        value = float(digits)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_positive(text: Optional[str]) -> Optional[float]:
    """Prices and quantities: everything but digits and the dot is stripped; must be > 0."""
    value = _number(text)
    if value is None or value <= 0:
        return None
    return value


def parse_stock(text: Optional[str]) -> Optional[int]:
    """A whole number >= 0."""
    digits = re.sub(r"[^0-9]", "", text or "")
    if not digits:
        return None
    return int(digits)


def parse_iso_date(text: Optional[str]) -> Optional[str]:
    value = (text or "").strip()
    if not ISO_DATE_PATTERN.match(value):
        return None
    try:
        date.fromisoformat(value)
    except ValueError:
        return None
    return value


def optional_text(text: Optional[str]) -> Optional[str]:
    """The skip sentinel and blank input both mean 'leave empty'."""
    if is_skip(text):
        return None
    value = (text or "").strip()
    return value or None


def compact(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in payload.items() if v is not None}
