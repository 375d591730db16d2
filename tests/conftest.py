"""
Pytest config.

Pins the repo root on sys.path so `import main` and `import oomwatch` work even when
a global `pytest` entrypoint is used without installing the project.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, Optional

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()


_SETTINGS_ENV = (
    "KUBE_MASTER_URL",
    "KUBECONFIG",
    "DB_URL",
    "POSTGRES_DSN",
    "POSTGRES_HOST",
    "POSTGRES_PORT",
    "POSTGRES_DB",
    "POSTGRES_USER",
    "POSTGRES_PASSWORD",
    "WEBHOOK_URL",
    "OOMWATCH_USERNAME",
    "OOMWATCH_QUEUE_SIZE",
    "OOMWATCH_WATCH_TIMEOUT_SECONDS",
    "WEBHOOK_TIMEOUT_SECONDS",
    "DB_CONNECT_TIMEOUT_SECONDS",
)


@pytest.fixture(autouse=True)
def _clean_settings_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Tests must not pick up settings from the developer's shell."""
    for name in _SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)


def pod_object(uid: Optional[str], name: str, namespace: str, resource_version: str = "1") -> Dict[str, Any]:
    metadata: Dict[str, Any] = {"name": name, "namespace": namespace, "resourceVersion": resource_version}
    if uid is not None:
        metadata["uid"] = uid
    return {"kind": "Pod", "metadata": metadata}


def event_object(
    *,
    node: str,
    message: str,
    reason: str = "OOMKilling",
    kind: str = "Node",
    resource_version: str = "1",
    uid: Optional[str] = None,
) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {"name": f"{node}.oom", "namespace": "default", "resourceVersion": resource_version}
    if uid is not None:
        metadata["uid"] = uid
    return {
        "kind": "Event",
        "metadata": metadata,
        "reason": reason,
        "message": message,
        "involvedObject": {"kind": kind, "name": node},
    }


@pytest.fixture
def make_pod():
    return pod_object


@pytest.fixture
def make_event():
    return event_object
