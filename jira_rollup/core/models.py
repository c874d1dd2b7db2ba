"""Domain data models for issues, change histories, and derived roll-up values."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

# calendar day (ISO "YYYY-MM-DD") -> progress 0..100
DailyProgressMap = dict[str, int]


@dataclass(slots=True)
class PersonModel:
    display_name: str
    avatar_url: str | None = None


@dataclass(slots=True)
class CommentModel:
    author: str | None
    created: datetime | None


@dataclass(slots=True)
class ChangeItemModel:
    field: str
    from_string: str | None
    to_string: str | None


@dataclass(slots=True)
class HistoryModel:
    created: datetime | None
    items: list[ChangeItemModel] = field(default_factory=list)


@dataclass(slots=True)
class IssueLinkModel:
    link_type: str
    target_key: str
    direction: str  # "outward" | "inward"


@dataclass(slots=True)
class IssueModel:
    id: str | None
    key: str
    summary: str | None
    status: str | None
    created: datetime | None
    labels: list[str] = field(default_factory=list)
    assignee: PersonModel | None = None
    links: list[IssueLinkModel] = field(default_factory=list)
    comments: list[CommentModel] = field(default_factory=list)
    # None: changelog was not requested; []: requested and empty
    histories: list[HistoryModel] | None = None


@dataclass(slots=True)
class ActivityRecord:
    last_activity: str | None = None  # ISO date
    pr_count: int = 0
    pr_merged: int = 0
    pr_open: int = 0
    repo_count: int = 0
    commit_count: int = 0

    def is_empty(self) -> bool:
        return self.last_activity is None and not (
            self.pr_count or self.pr_merged or self.pr_open or self.repo_count or self.commit_count
        )

    def to_dict(self) -> dict:
        return {
            "lastActivity": self.last_activity,
            "prCount": self.pr_count,
            "prMerged": self.pr_merged,
            "prOpen": self.pr_open,
            "repoCount": self.repo_count,
            "commitCount": self.commit_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ActivityRecord:
        return cls(
            last_activity=data.get("lastActivity"),
            pr_count=int(data.get("prCount") or 0),
            pr_merged=int(data.get("prMerged") or 0),
            pr_open=int(data.get("prOpen") or 0),
            repo_count=int(data.get("repoCount") or 0),
            commit_count=int(data.get("commitCount") or 0),
        )


@dataclass(slots=True)
class Contributor:
    display_name: str
    avatar_url: str | None = None

    def to_dict(self) -> dict:
        return {"name": self.display_name, "avatar": self.avatar_url}

    @classmethod
    def from_dict(cls, data: dict) -> Contributor:
        return cls(display_name=str(data.get("name") or ""), avatar_url=data.get("avatar"))


# role tag -> contributors (unique by display name)
ContributorRoster = dict[str, list[Contributor]]


def roster_to_dict(roster: ContributorRoster) -> dict[str, list[dict]]:
    return {role: [c.to_dict() for c in members] for role, members in roster.items() if members}


def roster_from_dict(data: dict) -> ContributorRoster:
    return {
        role: [Contributor.from_dict(m) for m in members if isinstance(m, dict)]
        for role, members in (data or {}).items()
        if isinstance(members, list)
    }
