"""Test configuration ensuring local package import when editable install not active.

If users invoke `pytest` outside the project's virtualenv, we still add the project
root to sys.path so `import jira_rollup` works. Also provides an in-memory
stand-in for the Jira REST API shared by the hierarchy and snapshot tests.
"""

from __future__ import annotations

import re
import sys
from datetime import datetime
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from jira_rollup.core.jira_client import JiraAPI, JiraRequestError  # noqa: E402

_KEY_IN = re.compile(r"key\s+in\s*\(([^)]*)\)", re.IGNORECASE)
_LABEL_EQ = re.compile(r"labels\s*=\s*['\"]?(\w+)['\"]?", re.IGNORECASE)


def _iso(value: datetime | str) -> str:
    return value if isinstance(value, str) else value.isoformat()


class FakeJiraAPI(JiraAPI):
    """Serves canned issues and dev-status payloads, recording every call."""

    def __init__(self):
        self.server = "https://example.atlassian.net"
        self.rest_api_version = "2"
        self.timeout = 5.0
        self._cache = {}
        self._cache_ttl = 0.0
        self.issues: dict[str, dict] = {}
        self.dev_payloads: dict[tuple, object] = {}
        self.failing_keys: set[str] = set()
        self.fail_search = False
        self.searches: list[str] = []
        self.fetches: list[tuple[str, bool]] = []
        self.json_calls: list[tuple[str, dict]] = []
        self._next_id = 10000

    # ------------------ Builders ------------------
    def add_issue(
        self,
        key: str,
        *,
        status: str = "Open",
        created: datetime | str = "2024-01-01T00:00:00+00:00",
        labels: list[str] | None = None,
        outward: list[str] | None = None,
        inward: list[str] | None = None,
        link_type: str = "Hierarchy",
        histories: list[dict] | None = None,
        assignee: str | None = None,
    ) -> dict:
        self._next_id += 1
        links = [{"type": {"name": link_type}, "outwardIssue": {"key": k}} for k in outward or []]
        links += [{"type": {"name": link_type}, "inwardIssue": {"key": k}} for k in inward or []]
        raw = {
            "id": str(self._next_id),
            "key": key,
            "fields": {
                "summary": f"Summary of {key}",
                "status": {"name": status},
                "created": _iso(created),
                "labels": list(labels or []),
                "assignee": {"displayName": assignee, "avatarUrls": {"48x48": f"https://a/{assignee}"}}
                if assignee
                else None,
                "issuelinks": links,
            },
            "changelog": {"histories": list(histories or [])},
        }
        self.issues[key] = raw
        return raw

    def link(self, parent: str, child: str, link_type: str = "Hierarchy") -> None:
        """Parent -> child outward link, mirrored as inward on the child."""
        self.issues[parent]["fields"]["issuelinks"].append({"type": {"name": link_type}, "outwardIssue": {"key": child}})
        self.issues[child]["fields"]["issuelinks"].append({"type": {"name": link_type}, "inwardIssue": {"key": parent}})

    # ------------------ JiraAPI surface ------------------
    def search(self, jql, fields=None, page_size=200):
        self.searches.append(jql)
        if self.fail_search:
            raise JiraRequestError("search failed 503: unavailable")
        candidates = list(self.issues.values())
        key_match = _KEY_IN.search(jql)
        if key_match:
            keys = {k.strip().strip("'\"") for k in key_match.group(1).split(",")}
            candidates = [i for i in candidates if i["key"] in keys]
        lower = jql.lower()
        if "labels is empty" in lower:
            candidates = [
                i for i in candidates if not {lbl.lower() for lbl in i["fields"]["labels"]} & {"theme", "milestone"}
            ]
        else:
            label_match = _LABEL_EQ.search(jql)
            if label_match:
                wanted = label_match.group(1).lower()
                candidates = [i for i in candidates if wanted in {lbl.lower() for lbl in i["fields"]["labels"]}]
        return [{k: v for k, v in i.items() if k != "changelog"} for i in candidates]

    def fetch_issue_raw(self, issue_key, *, changelog=False):
        self.fetches.append((issue_key, changelog))
        if issue_key in self.failing_keys or issue_key not in self.issues:
            raise JiraRequestError(f"Failed to fetch issue {issue_key}: 404")
        raw = dict(self.issues[issue_key])
        if not changelog:
            raw.pop("changelog", None)
        return raw

    def get_json(self, path, params=None):
        params = dict(params or {})
        self.json_calls.append((path, params))
        payload = self.dev_payloads.get((path, params.get("applicationType")))
        if isinstance(payload, Exception):
            raise payload
        return payload if payload is not None else {}


@pytest.fixture
def tracker() -> FakeJiraAPI:
    return FakeJiraAPI()
