"""Mapping raw Jira issue JSON into IssueModel instances.

This is the adapter boundary: everything past it sees typed models, never
the optional/nested shapes of the REST payloads.
"""

from __future__ import annotations

from typing import Any

import pandas as pd

from .models import (
    ChangeItemModel,
    CommentModel,
    HistoryModel,
    IssueLinkModel,
    IssueModel,
    PersonModel,
)

AVATAR_SIZES = ("48x48", "32x32", "24x24", "16x16")


def parse_dt(val):
    if not val:
        return None
    ts = pd.to_datetime(val, utc=True, errors="coerce")
    if ts is None or pd.isna(ts):
        return None
    return ts.to_pydatetime()


def map_person(raw: Any) -> PersonModel | None:
    if not isinstance(raw, dict):
        return None
    name = raw.get("displayName") or raw.get("name")
    if not name:
        return None
    avatars = raw.get("avatarUrls") or {}
    avatar = next((avatars.get(size) for size in AVATAR_SIZES if avatars.get(size)), None)
    return PersonModel(display_name=str(name), avatar_url=avatar)


def map_links(raw_links: Any) -> list[IssueLinkModel]:
    links: list[IssueLinkModel] = []
    if not isinstance(raw_links, list):
        return links
    for link in raw_links:
        if not isinstance(link, dict):
            continue
        type_name = str((link.get("type") or {}).get("name") or "")
        for direction, side in (("outward", "outwardIssue"), ("inward", "inwardIssue")):
            target = link.get(side)
            if isinstance(target, dict) and target.get("key"):
                links.append(IssueLinkModel(link_type=type_name, target_key=target["key"], direction=direction))
    return links


def map_histories(raw: dict[str, Any]) -> list[HistoryModel] | None:
    changelog = raw.get("changelog")
    if not isinstance(changelog, dict):
        return None
    histories: list[HistoryModel] = []
    for h in changelog.get("histories") or []:
        items = [
            ChangeItemModel(
                field=str(it.get("field") or "").lower(),
                from_string=it.get("fromString"),
                to_string=it.get("toString"),
            )
            for it in h.get("items") or []
            if isinstance(it, dict)
        ]
        histories.append(HistoryModel(created=parse_dt(h.get("created")), items=items))
    return histories


def map_issue(raw: dict[str, Any]) -> IssueModel:
    fields = raw.get("fields") or {}
    comments_raw = (fields.get("comment") or {}).get("comments", []) or []
    comments = [
        CommentModel(
            author=(c.get("author") or {}).get("displayName"),
            created=parse_dt(c.get("created")),
        )
        for c in comments_raw
    ]
    return IssueModel(
        id=str(raw["id"]) if raw.get("id") is not None else None,
        key=raw.get("key"),
        summary=fields.get("summary"),
        status=(fields.get("status") or {}).get("name") if fields.get("status") else None,
        created=parse_dt(fields.get("created")),
        labels=list(fields.get("labels", []) or []),
        assignee=map_person(fields.get("assignee")),
        links=map_links(fields.get("issuelinks")),
        comments=comments,
        histories=map_histories(raw),
    )
