"""Value helpers for spreadsheet cells and IP addresses."""

import re
from datetime import date, datetime, time
from typing import Any, Optional

_IPV4_RE = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$")
_LEADING_NUMBER_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)")

SCALAR_TYPES = (str, int, float, bool, datetime, date, time, type(None))


def normalize_cell(value: Any) -> Any:
    """Normalize a raw cell value (booleans become 0/1, blank strings become None)."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, str) and value == "":
        return None
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def is_blank(value: Any) -> bool:
    """Check if a cell value counts as empty."""
    return value is None or (isinstance(value, str) and value.strip() == "")


def to_text(value: Any) -> str:
    """Render a cell value as text (None becomes an empty string)."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def to_number(value: Any) -> Optional[float]:
    """
    Parse the leading number of a cell value.

    Accepts plain numbers and strings such as "4", "2.5" or "8 GB".
    Returns None when no number can be read.
    """
    if value is None or isinstance(value, bool):
        return float(value) if isinstance(value, bool) else None
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_NUMBER_RE.match(str(value))
    if not match:
        return None
    return float(match.group(1))


def to_flag(value: Any) -> Optional[int]:
    """Interpret a 0/1 flag cell. Returns None when the cell is blank or not a number."""
    if is_blank(value):
        return None
    number = to_number(value)
    if number is None:
        return None
    return int(number)


def values_match(left: Any, right: Any) -> bool:
    """
    Compare two cell values for natural-key matching.

    Blank values are equal to each other, numbers compare numerically
    (so 5 matches "5"), everything else compares as exact text.
    """
    if is_blank(left) or is_blank(right):
        return is_blank(left) and is_blank(right)
    if isinstance(left, (int, float)) or isinstance(right, (int, float)):
        left_number = to_number(left) if not isinstance(left, str) or _is_numeric_text(left) else None
        right_number = to_number(right) if not isinstance(right, str) or _is_numeric_text(right) else None
        if left_number is not None and right_number is not None:
            return left_number == right_number
    return to_text(left) == to_text(right)


def _is_numeric_text(value: str) -> bool:
    try:
        float(value)
    except ValueError:
        return False
    return True


def is_ipv4(value: str) -> bool:
    """Check if a string looks like a dotted IPv4 address."""
    return bool(value) and bool(_IPV4_RE.match(value.strip()))


def ip_prefix(ip: str) -> str:
    """
    Get the first three octets of an IP address.

    Returns the input unchanged when it has fewer than three segments.
    """
    if not ip:
        return ""
    parts = ip.strip().split(".")
    if len(parts) >= 3:
        return ".".join(parts[:3])
    return ip.strip()
