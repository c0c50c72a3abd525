"""
Display formatting for minor-unit money amounts (Vietnamese đồng) and
log-safe identifiers.
"""
import hashlib
import re
from typing import Optional

_NON_DIGITS = re.compile(r"[^\d]")


def parse_vnd(value: Optional[str]) -> int:
    """Parse a display price such as "1.299.000đ" into minor units (1299000)."""
    if not value:
        return 0
    digits = _NON_DIGITS.sub("", value)
    return int(digits) if digits else 0


def format_vnd(amount: int) -> str:
    """Format minor units for display: 1299000 -> "1.299.000đ"."""
    sign = "-" if amount < 0 else ""
    grouped = f"{abs(amount):,}".replace(",", ".")
    return f"{sign}{grouped}đ"


def hash_identifier(identifier: str) -> str:
    """Hash identifier for logging (no PII)"""
    return hashlib.sha256(identifier.encode()).hexdigest()[:8]
