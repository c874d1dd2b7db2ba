"""Theme -> Milestone -> Epic -> Task traversal over issue links.

Levels are label conventions over a flat issue graph. Children of a node are
its structurally linked issues (clone/duplicate links excluded) that pass the
child level's label filter, fetched with one batched ``key in (...)`` search.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from .config import EXCLUDED_LINK_TYPE_FRAGMENTS, HIERARCHY_FIELDS, MILESTONE_LABEL, SEARCH_PAGE_SIZE, THEME_LABEL
from .jira_client import JiraAPI
from .mappers import map_issue
from .models import IssueLinkModel, IssueModel

LEVEL_THEME = "theme"
LEVEL_MILESTONE = "milestone"
LEVEL_EPIC = "epic"
LEVEL_TASK = "task"

CHILD_LEVEL: dict[str, str] = {
    LEVEL_THEME: LEVEL_MILESTONE,
    LEVEL_MILESTONE: LEVEL_EPIC,
    LEVEL_EPIC: LEVEL_TASK,
}

BOTH_DIRECTIONS: Sequence[str] = ("outward", "inward")
OUTWARD_ONLY: Sequence[str] = ("outward",)

# Task belongs-to Epic is directional; the upper levels link either way
LINK_DIRECTIONS: dict[str, Sequence[str]] = {
    LEVEL_THEME: BOTH_DIRECTIONS,
    LEVEL_MILESTONE: BOTH_DIRECTIONS,
    LEVEL_EPIC: OUTWARD_ONLY,
}

THEME_FILTER = f"labels = {THEME_LABEL}"
LABEL_FILTERS: dict[str, str] = {
    LEVEL_MILESTONE: f"labels = {MILESTONE_LABEL}",
    LEVEL_EPIC: f"(labels is EMPTY OR (labels != {THEME_LABEL} AND labels != {MILESTONE_LABEL}))",
    LEVEL_TASK: f"(labels is EMPTY OR (labels != {THEME_LABEL} AND labels != {MILESTONE_LABEL}))",
}

_ORDER_BY = re.compile(r"\s+order\s+by\s+", re.IGNORECASE)


def is_structural_link(link_type: str | None) -> bool:
    name = str(link_type or "").lower()
    return not any(fragment in name for fragment in EXCLUDED_LINK_TYPE_FRAGMENTS)


def structural_links(issue: IssueModel, directions: Sequence[str] = BOTH_DIRECTIONS) -> list[IssueLinkModel]:
    return [
        link for link in issue.links if link.direction in directions and is_structural_link(link.link_type)
    ]


def linked_keys(issue: IssueModel, directions: Sequence[str] = BOTH_DIRECTIONS) -> list[str]:
    """Distinct structural link targets of ``issue`` in first-seen order."""
    seen: set[str] = set()
    out: list[str] = []
    for link in structural_links(issue, directions):
        if link.target_key not in seen and link.target_key != issue.key:
            seen.add(link.target_key)
            out.append(link.target_key)
    return out


def count_structural_children(issue: IssueModel) -> int:
    """Child count for display: clone/duplicate links do not count."""
    return len(linked_keys(issue))


def split_order_by(fragment: str | None) -> tuple[str, str]:
    """Split a JQL fragment into ``(condition, order_clause)``.

    >>> split_order_by("project = PROJ ORDER BY created DESC")
    ('project = PROJ', 'ORDER BY created DESC')
    """
    text = str(fragment or "").strip()
    if text.lower().startswith("order by"):
        return "", text
    matches = list(_ORDER_BY.finditer(text))
    if not matches:
        return text, ""
    match = matches[-1]
    return text[: match.start()].strip(), "ORDER BY " + text[match.end() :].strip()


def theme_query(fragment: str | None = None) -> str:
    condition, order = split_order_by(fragment)
    jql = f"({condition}) AND {THEME_FILTER}" if condition else THEME_FILTER
    return f"{jql} {order}" if order else jql


def children_query(keys: Sequence[str], level: str) -> str:
    key_list = ", ".join(keys)
    return f"key in ({key_list}) AND {LABEL_FILTERS[level]}"


class HierarchyWalker:
    def __init__(self, api: JiraAPI, page_size: int = SEARCH_PAGE_SIZE):
        self.api = api
        self.page_size = page_size

    def _search(self, jql: str) -> list[IssueModel]:
        raw = self.api.search(jql, fields=list(HIERARCHY_FIELDS), page_size=self.page_size)
        return [map_issue(r) for r in raw]

    def list_themes(self, fragment: str | None = None) -> list[IssueModel]:
        """Top-level enumeration; failures propagate to abort the run."""
        return self._search(theme_query(fragment))

    def fetch(self, issue_key: str, *, changelog: bool = False) -> IssueModel:
        """Full issue record (links included), optionally with its changelog."""
        return map_issue(self.api.fetch_issue_raw(issue_key, changelog=changelog))

    def children(self, parent: IssueModel, level: str) -> list[IssueModel]:
        """Children of a fully fetched ``parent`` sitting at ``level``.

        Returns an empty list for task-level parents and for parents without
        structural links, without querying the tracker.
        """
        child_level = CHILD_LEVEL.get(level)
        if child_level is None:
            return []
        keys = linked_keys(parent, LINK_DIRECTIONS[level])
        if not keys:
            return []
        return self._search(children_query(keys, child_level))
