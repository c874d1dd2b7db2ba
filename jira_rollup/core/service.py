"""Wiring: build the tracker client, snapshot store, and orchestrator from settings.

Orchestrators are shared per snapshot file across every caller in the process
(each Streamlit session included), so the single-run guard and the store lock
cover everyone writing that file.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from .config import SNAPSHOT_FILE_NAME, AppSettings
from .jira_client import JiraAPI
from .snapshot import SnapshotOrchestrator
from .snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()
# resolved store path -> (connection fingerprint, orchestrator)
_orchestrators: dict[Path, tuple[tuple, SnapshotOrchestrator]] = {}


def _connection_key(settings: AppSettings) -> tuple:
    return (settings.server, settings.email, settings.token, settings.rest_api_version, settings.timeout)


def _build_api(settings: AppSettings) -> JiraAPI:
    return JiraAPI(
        settings.server,
        settings.email,
        settings.token,
        rest_api_version=settings.rest_api_version,
        timeout=settings.timeout,
    )


def snapshot_path(settings: AppSettings) -> Path:
    return (Path(settings.data_dir) / SNAPSHOT_FILE_NAME).resolve()


def create_orchestrator(settings: AppSettings) -> SnapshotOrchestrator:
    """Orchestrator for the snapshot file named by ``settings``.

    Callers pointing at the same file get the same instance. Changed
    credentials are applied to an idle orchestrator; while a run is in flight
    ``SnapshotAlreadyRunningError`` is raised instead.
    """
    if not settings.is_complete:
        raise ValueError("Jira server, email and API token are required")
    path = snapshot_path(settings)
    key = _connection_key(settings)
    with _registry_lock:
        entry = _orchestrators.get(path)
        if entry is None:
            orchestrator = SnapshotOrchestrator(_build_api(settings), SnapshotStore(path))
            _orchestrators[path] = (key, orchestrator)
            return orchestrator
        current_key, orchestrator = entry
        if current_key != key:
            orchestrator.rebind(_build_api(settings))
            _orchestrators[path] = (key, orchestrator)
            logger.info("Snapshot orchestrator for %s switched to %s", path, settings.server)
        return orchestrator
