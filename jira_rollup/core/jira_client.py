"""Jira API client wrapper (offset-paginated search + raw REST access)."""

from __future__ import annotations

import hashlib
import json
import time
from typing import Any

import requests
from jira import JIRA, JIRAError

from .config import DEFAULT_HTTP_TIMEOUT, DEFAULT_REST_API_VERSION, SEARCH_CACHE_TTL, SEARCH_PAGE_SIZE


class JiraRequestError(RuntimeError):
    """Any failed remote call: HTTP error status, auth failure, or timeout."""


class JiraAPI:
    def __init__(
        self,
        server: str,
        email: str,
        token: str,
        *,
        rest_api_version: str = DEFAULT_REST_API_VERSION,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ):
        self.server = server.rstrip("/")
        self.rest_api_version = rest_api_version
        self.timeout = timeout
        self.client = JIRA(
            basic_auth=(email, token),
            options={"server": self.server, "rest_api_version": rest_api_version},
            timeout=timeout,
        )
        # Simple in-memory cache: {(hash): (timestamp, data)}
        self._cache: dict[str, tuple[float, list]] = {}
        self._cache_ttl = SEARCH_CACHE_TTL

    def clear_cache(self) -> None:
        """Reset the in-memory search cache."""
        cache = getattr(self, "_cache", None)
        if isinstance(cache, dict):
            cache.clear()

    def _cache_key(self, jql: str, fields, page_size: int) -> str:
        payload = {"jql": jql, "fields": fields, "page_size": page_size}
        return hashlib.sha256(json.dumps(payload, sort_keys=True).encode()).hexdigest()

    def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET ``path`` relative to the server and decode the JSON body."""
        session = getattr(self.client, "_session", None)
        if session is None:
            raise JiraRequestError("JIRA session unavailable")
        url = f"{self.server}{path}"
        try:
            resp = session.get(url, params=params, timeout=self.timeout)
        except (JIRAError, requests.RequestException) as exc:
            raise JiraRequestError(f"GET {path} failed: {exc}") from exc
        if resp.status_code >= 400:
            raise JiraRequestError(f"GET {path} failed {resp.status_code}: {resp.text[:200]}")
        try:
            return resp.json()
        except ValueError as exc:
            raise JiraRequestError(f"GET {path} returned invalid JSON") from exc

    def search(
        self,
        jql: str,
        fields: list[str] | None = None,
        page_size: int = SEARCH_PAGE_SIZE,
    ) -> list[dict[str, Any]]:
        key = self._cache_key(jql, fields, page_size)
        now = time.time()
        cached = self._cache.get(key)
        if cached and (now - cached[0]) < self._cache_ttl:
            return cached[1]
        path = f"/rest/api/{self.rest_api_version}/search"
        params: dict[str, Any] = {"jql": jql, "maxResults": page_size}
        if fields:
            params["fields"] = ",".join(fields)
        out: list[dict[str, Any]] = []
        start_at = 0
        while True:
            data = self.get_json(path, {**params, "startAt": start_at})
            page = data.get("issues", []) or []
            out.extend(page)
            total = int(data.get("total") or 0)
            start_at += len(page)
            if not page or start_at >= total:
                break
        self._cache[key] = (now, out)
        return out

    def fetch_issue_raw(self, issue_key: str, *, changelog: bool = False) -> dict[str, Any]:
        try:
            issue = self.client.issue(issue_key, expand="changelog" if changelog else None)
        except (JIRAError, requests.RequestException) as exc:
            raise JiraRequestError(f"Failed to fetch issue {issue_key}: {exc}") from exc
        if hasattr(issue, "raw"):
            return issue.raw
        if isinstance(issue, dict):
            return issue
        raise JiraRequestError(f"Unexpected issue payload type for {issue_key}: {type(issue)!r}")
