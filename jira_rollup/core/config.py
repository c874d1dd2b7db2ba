"""Central configuration, constants, and runtime settings for the roll-up engine."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

# =============================================================================
# Jira Connection Settings
# =============================================================================
DEFAULT_REST_API_VERSION = "2"
DEFAULT_HTTP_TIMEOUT: float = 30.0  # seconds, applies to every remote call
TIMEZONE = "UTC"  # calendar days for trend lines are cut in this zone
SEARCH_PAGE_SIZE: int = 200
SEARCH_CACHE_TTL: float = 300.0  # seconds

# Fields requested for every hierarchy search
HIERARCHY_FIELDS: Sequence[str] = (
    "summary",
    "status",
    "created",
    "labels",
    "assignee",
    "issuelinks",
)

# =============================================================================
# Hierarchy Label Conventions
# =============================================================================
THEME_LABEL = "theme"
MILESTONE_LABEL = "milestone"

# Link types whose name contains any of these fragments are not structural
EXCLUDED_LINK_TYPE_FRAGMENTS: Sequence[str] = ("cloners", "duplicate")

# =============================================================================
# Snapshot Windows
# =============================================================================
TREND_WINDOW_DAYS: int = 60  # number of daily points per trend line
SNAPSHOT_RETENTION_DAYS: int = 60  # dates older than this are pruned on save
CONTRIBUTOR_WINDOW_DAYS: int = 30

SNAPSHOT_FILE_NAME = "progress-history.json"

MODE_ALL = "all"
MODE_TREND = "trend"
MODE_GIT = "git"
SNAPSHOT_MODES: frozenset[str] = frozenset({MODE_ALL, MODE_TREND, MODE_GIT})

# =============================================================================
# Status -> Progress Table
# =============================================================================
# Ordered: exact lookups first, then the substring fallback walks this order.
STATUS_PROGRESS: tuple[tuple[str, int], ...] = (
    ("open", 0),
    ("backlog", 0),
    ("new", 0),
    ("to do", 0),
    ("in progress", 20),
    ("in development", 20),
    ("dev", 20),
    ("in review", 20),
    ("review", 20),
    ("qa", 40),
    ("testing", 40),
    ("uat", 60),
    ("ready for release", 80),
    ("done", 100),
    ("closed", 100),
    ("resolved", 100),
)

# =============================================================================
# Status -> Contributor Role Table
# =============================================================================
ROLE_ANALYSIS = "author/analysis"
ROLE_DEVELOPMENT = "development"
ROLE_QA = "qa"
CONTRIBUTOR_ROLES: Sequence[str] = (ROLE_ANALYSIS, ROLE_DEVELOPMENT, ROLE_QA)

# None means the phase carries no role (work is finished)
STATUS_ROLES: tuple[tuple[str, str | None], ...] = (
    ("open", ROLE_ANALYSIS),
    ("backlog", ROLE_ANALYSIS),
    ("new", ROLE_ANALYSIS),
    ("to do", ROLE_ANALYSIS),
    ("analysis", ROLE_ANALYSIS),
    ("in analysis", ROLE_ANALYSIS),
    ("in progress", ROLE_DEVELOPMENT),
    ("in development", ROLE_DEVELOPMENT),
    ("development", ROLE_DEVELOPMENT),
    ("in review", ROLE_DEVELOPMENT),
    ("code review", ROLE_DEVELOPMENT),
    ("review", ROLE_DEVELOPMENT),
    ("selected for development", ROLE_ANALYSIS),
    ("qa", ROLE_QA),
    ("in qa", ROLE_QA),
    ("testing", ROLE_QA),
    ("in testing", ROLE_QA),
    ("uat", ROLE_QA),
    ("ready for release", None),
    ("done", None),
    ("closed", None),
    ("resolved", None),
    ("cancelled", None),
)
# Phase assumed for an assignment made in a status neither table knows
DEFAULT_CONTRIBUTOR_ROLE = ROLE_DEVELOPMENT

# =============================================================================
# Dev-status (source-control integration) Endpoints
# =============================================================================
DEV_STATUS_VERSIONS: Sequence[str] = ("1.0", "latest")
DEV_STATUS_APPLICATION_TYPES: Sequence[str] = ("stash", "bitbucket", "github")
DEV_STATUS_DATA_TYPE = "repository"


@dataclass(slots=True)
class AppSettings:
    server: str = ""
    email: str = ""
    token: str = ""
    rest_api_version: str = DEFAULT_REST_API_VERSION
    timeout: float = DEFAULT_HTTP_TIMEOUT
    hierarchy_jql: str = ""
    data_dir: str = "."

    @property
    def is_complete(self) -> bool:
        return bool(self.server and self.email and self.token)


SETTINGS = AppSettings()
