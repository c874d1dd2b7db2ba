"""Phase-aware contributor roster extraction from an issue's changelog."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytz

from jira_rollup.core.config import CONTRIBUTOR_ROLES, CONTRIBUTOR_WINDOW_DAYS
from jira_rollup.core.models import Contributor, ContributorRoster, IssueModel
from jira_rollup.core.status import map_status_role

from .timeline import ChangelogUnavailableError


def extract_contributors(
    issue: IssueModel,
    now: datetime,
    window_days: int = CONTRIBUTOR_WINDOW_DAYS,
) -> ContributorRoster:
    """Build a role -> contributors roster for ``issue``.

    Every assignee change inside the trailing window is credited to the role
    implied by the status the issue was in at that point of the changelog
    (status changes recorded in the same history entry apply first). The
    current assignee is always credited under the role of the current status.
    """
    if issue.histories is None:
        raise ChangelogUnavailableError(f"{issue.key} was fetched without its changelog")
    if now.tzinfo is None:
        now = pytz.UTC.localize(now)
    window_start = now - timedelta(days=window_days)

    histories = sorted(
        (h for h in issue.histories if h.created is not None),
        key=lambda h: h.created,
    )
    current_status = issue.status
    for history in histories:
        first_status = next((it for it in history.items if it.field == "status"), None)
        if first_status is not None:
            current_status = first_status.from_string or issue.status
            break

    avatars: dict[str, str | None] = {}
    if issue.assignee is not None:
        avatars[issue.assignee.display_name] = issue.assignee.avatar_url

    # name -> roles, inverted at the end
    by_name: dict[str, set[str]] = {}

    def credit(name: str | None, status: str | None) -> None:
        if not name:
            return
        role = map_status_role(status)
        if role is None:
            return
        by_name.setdefault(name, set()).add(role)

    for history in histories:
        status_items = [it for it in history.items if it.field == "status"]
        for item in status_items:
            current_status = item.to_string or current_status
        if history.created < window_start:
            continue
        for item in history.items:
            if item.field == "assignee":
                credit(item.to_string, current_status)

    if issue.assignee is not None:
        credit(issue.assignee.display_name, issue.status)

    roster: ContributorRoster = {}
    for role in CONTRIBUTOR_ROLES:
        members = sorted(name for name, roles in by_name.items() if role in roles)
        if members:
            roster[role] = [Contributor(display_name=n, avatar_url=avatars.get(n)) for n in members]
    return roster
