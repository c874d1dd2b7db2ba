"""Status -> progress and status -> contributor role policies.

Both lookups lowercase and trim the label, try an exact match against their
ordered table, then fall back to substring containment in either direction,
walking the table in order. The two tables are independent: the role
table knows phases (analysis, QA) the progress table does not distinguish.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

from .config import DEFAULT_CONTRIBUTOR_ROLE, STATUS_PROGRESS, STATUS_ROLES

T = TypeVar("T")

_PROGRESS_EXACT: dict[str, int] = dict(STATUS_PROGRESS)
_ROLES_EXACT: dict[str, str | None] = dict(STATUS_ROLES)


def _clean(value: str | None) -> str:
    if not value:
        return ""
    return str(value).strip().lower()


def _lookup(text: str, exact: dict[str, T], table: Sequence[tuple[str, T]]) -> tuple[bool, T | None]:
    if text in exact:
        return True, exact[text]
    for key, mapped in table:
        if key in text or text in key:
            return True, mapped
    return False, None


def map_status_progress(value: str | None) -> int:
    """Map a workflow status label to a 0..100 progress value.

    Unknown or empty labels map to 0.

    Examples
    --------
    >>> map_status_progress("  In Progress ")
    20
    >>> map_status_progress("Ready for Release")
    80
    >>> map_status_progress("In QA")
    40
    >>> map_status_progress("Something else")
    0
    """
    text = _clean(value)
    if not text:
        return 0
    found, mapped = _lookup(text, _PROGRESS_EXACT, STATUS_PROGRESS)
    return int(mapped) if found and mapped is not None else 0


def map_status_role(value: str | None) -> str | None:
    """Map the status an assignment happened in to a contributor role.

    Returns None for finished phases (done/closed), which carry no role.
    Statuses neither exact nor substring matching fall back to
    ``DEFAULT_CONTRIBUTOR_ROLE``.
    """
    text = _clean(value)
    if not text:
        return DEFAULT_CONTRIBUTOR_ROLE
    found, mapped = _lookup(text, _ROLES_EXACT, STATUS_ROLES)
    if not found:
        return DEFAULT_CONTRIBUTOR_ROLE
    return mapped
