"""Load runtime settings from YAML (with fallbacks)."""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import urlsplit

import yaml

from .config import DEFAULT_HTTP_TIMEOUT, DEFAULT_REST_API_VERSION, AppSettings

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.yaml"


def normalize_server(value: str | None) -> str:
    """Normalize a Jira host into ``scheme://host[:port][/base]``.

    Accepts bare hosts (``jira.example.com``), full URLs and URLs carrying a
    context path (``https://example.com/jira02/``).

    >>> normalize_server("jira.example.com")
    'https://jira.example.com'
    >>> normalize_server("https://example.com/jira02/")
    'https://example.com/jira02'
    """
    text = str(value or "").strip()
    if not text:
        return ""
    if not text.startswith(("http://", "https://")):
        text = "https://" + text
    parts = urlsplit(text)
    base = parts.path.rstrip("/")
    return f"{parts.scheme}://{parts.netloc}{base}"


def settings_from_mapping(data: dict) -> AppSettings:
    jira = data.get("jira") or {}
    snapshot = data.get("snapshot") or {}
    timeout = jira.get("timeout", DEFAULT_HTTP_TIMEOUT)
    try:
        timeout = float(timeout)
    except (TypeError, ValueError):
        timeout = DEFAULT_HTTP_TIMEOUT
    return AppSettings(
        server=normalize_server(jira.get("server") or jira.get("host")),
        email=str(jira.get("email") or jira.get("jira_user") or ""),
        token=str(jira.get("api_token") or jira.get("token") or ""),
        rest_api_version=str(jira.get("rest_api_version") or DEFAULT_REST_API_VERSION),
        timeout=timeout,
        hierarchy_jql=str(snapshot.get("hierarchy_jql") or ""),
        data_dir=str(snapshot.get("data_dir") or "."),
    )


def load_settings(path: str | Path | None = None) -> AppSettings:
    """Read ``config.yaml``; a missing or unreadable file yields defaults."""
    yaml_path = Path(path) if path else Path.cwd() / CONFIG_FILE_NAME
    if not yaml_path.exists():
        return AppSettings()
    try:
        data = yaml.safe_load(yaml_path.read_text()) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", yaml_path, exc)
        return AppSettings()
    if not isinstance(data, dict):
        logger.warning("Ignoring settings file %s: expected a mapping", yaml_path)
        return AppSettings()
    return settings_from_mapping(data)
