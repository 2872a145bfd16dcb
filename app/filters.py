"""Row filters: client partition, active flag, search, sort and masking."""

from typing import Any, Iterable, List, Optional, Sequence

from app.tables import ACTIVE, DEFAULT_SENSITIVE_FIELDS, INACTIVE
from app.utils import is_blank, to_flag

MASK = "●●●●●●"


def by_client(rows: Sequence[dict], client: Optional[str]) -> List[dict]:
    """Keep rows whose Client equals client, in order. No client means no filtering."""
    if not client:
        return list(rows)
    return [row for row in rows if row.get("Client") == client]


def is_active(row: dict, flag_column: str = ACTIVE) -> bool:
    """
    Check if a row is live.

    Rows without the flag column are active, since most sheets predate it.
    """
    flag = to_flag(row.get(flag_column))
    if flag is None:
        return True
    if flag_column == INACTIVE:
        return flag != 1
    return flag == 1


def by_active(rows: Sequence[dict], active: Optional[bool], flag_column: str = ACTIVE) -> List[dict]:
    """Keep active rows (active=True) or inactive rows (active=False). None means no filtering."""
    if active is None:
        return list(rows)
    return [row for row in rows if is_active(row, flag_column) == active]


def filter_out_inactive(rows: Sequence[dict]) -> List[dict]:
    """Drop rows archived with Inactive=1."""
    return [row for row in rows if to_flag(row.get(INACTIVE)) != 1]


def search_rows(rows: Sequence[dict], term: Optional[str], fields: Iterable[str] = ()) -> List[dict]:
    """Case-insensitive substring search over the given fields (all fields when none given)."""
    if not term:
        return list(rows)
    needle = term.lower()
    fields = list(fields)

    def _matches(row: dict) -> bool:
        values = [row.get(f) for f in fields] if fields else list(row.values())
        return any(v is not None and needle in str(v).lower() for v in values)

    return [row for row in rows if _matches(row)]


def sort_rows(rows: Sequence[dict], field: str, direction: str = "asc") -> List[dict]:
    """
    Sort rows by one field.

    Numbers sort numerically, text case-insensitively, and blank values
    always go last regardless of direction.
    """
    reverse = direction == "desc"
    present = [row for row in rows if not is_blank(row.get(field))]
    blank = [row for row in rows if is_blank(row.get(field))]

    def _key(row: dict):
        value: Any = row.get(field)
        if isinstance(value, (int, float)):
            return (0, value, "")
        return (1, 0, str(value).lower())

    return sorted(present, key=_key, reverse=reverse) + blank


def mask_sensitive(row: dict, extra_fields: Iterable[str] = ()) -> dict:
    """Return a copy of row with password-like values replaced by a mask."""
    masked = dict(row)
    for name in list(DEFAULT_SENSITIVE_FIELDS) + list(extra_fields):
        if masked.get(name):
            masked[name] = MASK
    for name in masked:
        if name.startswith("Encrypt PW") and masked[name]:
            masked[name] = MASK
    return masked
