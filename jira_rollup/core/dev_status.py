"""Development-activity (commits / pull requests) lookup via Jira's dev-status API.

The summary endpoint is cheap but often unpopulated, so a zero summary falls
through to the detail endpoint, trying every API version and application
type until one returns repositories. Each response shape gets its own parser
that maps into ``ActivityRecord``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

import pandas as pd

from .config import DEV_STATUS_APPLICATION_TYPES, DEV_STATUS_DATA_TYPE, DEV_STATUS_VERSIONS
from .jira_client import JiraAPI, JiraRequestError
from .models import ActivityRecord

logger = logging.getLogger(__name__)


def _day(value: Any) -> str | None:
    if not value:
        return None
    ts = pd.to_datetime(value, utc=True, errors="coerce")
    if ts is None or pd.isna(ts):
        return None
    return ts.date().isoformat()


def _latest(days: Iterable[str | None]) -> str | None:
    present = [d for d in days if d]
    return max(present) if present else None


def _count(block: Any) -> int:
    try:
        return max(int((block or {}).get("count") or 0), 0)
    except (TypeError, ValueError, AttributeError):
        return 0


def parse_summary(payload: Any) -> ActivityRecord | None:
    """Map a ``/issue/summary`` payload; None when it reports no activity."""
    summary = (payload or {}).get("summary") if isinstance(payload, dict) else None
    if not isinstance(summary, dict):
        return None
    pr = (summary.get("pullrequest") or {}).get("overall") or {}
    commit = (summary.get("commit") or {}).get("overall") or {}
    repo = (summary.get("repository") or {}).get("overall") or {}
    pr_count, commit_count, repo_count = _count(pr), _count(commit), _count(repo)
    if pr_count + commit_count + repo_count == 0:
        return None
    details = pr.get("details") or {}
    return ActivityRecord(
        last_activity=_latest(_day(block.get("lastUpdated")) for block in (pr, commit, repo)),
        pr_count=pr_count,
        pr_merged=max(int(details.get("mergedCount") or 0), 0),
        pr_open=max(int(details.get("openCount") or 0), 0),
        repo_count=repo_count,
        commit_count=commit_count,
    )


def parse_detail(payload: Any) -> ActivityRecord | None:
    """Map a ``/issue/detail`` payload; None when no repository is listed."""
    detail = (payload or {}).get("detail") if isinstance(payload, dict) else None
    if not isinstance(detail, list):
        return None
    repositories: list[dict] = []
    for entry in detail:
        if isinstance(entry, dict):
            repositories.extend(r for r in entry.get("repositories") or [] if isinstance(r, dict))
    if not repositories:
        return None
    commits = [c for repo in repositories for c in repo.get("commits") or [] if isinstance(c, dict)]
    return ActivityRecord(
        last_activity=_latest(_day(c.get("authorTimestamp")) for c in commits),
        repo_count=len(repositories),
        commit_count=len(commits),
    )


class DevActivityFetcher:
    def __init__(self, api: JiraAPI):
        self.api = api

    def fetch(self, issue_id: str | None) -> ActivityRecord | None:
        """Best-effort activity for one issue; None means no git linkage found."""
        if not issue_id:
            return None
        record = self._from_summary(issue_id)
        if record is not None:
            return record
        return self._from_detail(issue_id)

    def _from_summary(self, issue_id: str) -> ActivityRecord | None:
        for version in DEV_STATUS_VERSIONS:
            path = f"/rest/dev-status/{version}/issue/summary"
            try:
                payload = self.api.get_json(path, {"issueId": issue_id})
                record = parse_summary(payload)
            except (JiraRequestError, TypeError, ValueError, AttributeError) as exc:
                logger.debug("Dev summary %s failed for issue %s: %s", version, issue_id, exc)
                continue
            if record is not None:
                return record
        return None

    def _from_detail(self, issue_id: str) -> ActivityRecord | None:
        for version in DEV_STATUS_VERSIONS:
            for app_type in DEV_STATUS_APPLICATION_TYPES:
                path = f"/rest/dev-status/{version}/issue/detail"
                params = {
                    "issueId": issue_id,
                    "applicationType": app_type,
                    "dataType": DEV_STATUS_DATA_TYPE,
                }
                try:
                    payload = self.api.get_json(path, params)
                    record = parse_detail(payload)
                except (JiraRequestError, TypeError, ValueError, AttributeError) as exc:
                    logger.debug("Dev detail %s/%s failed for issue %s: %s", version, app_type, issue_id, exc)
                    continue
                if record is not None:
                    return record
        return None
