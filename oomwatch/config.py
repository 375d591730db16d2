from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any, Optional

from oomwatch.core.errors import ConfigError

DEFAULT_USERNAME = "OOM watcher"
DEFAULT_QUEUE_SIZE = 128
DEFAULT_WATCH_TIMEOUT_SECONDS = 300
DEFAULT_WEBHOOK_TIMEOUT_SECONDS = 10
DEFAULT_DB_CONNECT_TIMEOUT_SECONDS = 10


def _env_str(name: str) -> Optional[str]:
    return (os.getenv(name) or "").strip() or None


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except Exception:
        return default


@dataclass(frozen=True)
class OOMWatchConfig:
    # Kubernetes connection (both optional: in-cluster config is the default)
    master_url: Optional[str]
    kubeconfig_path: Optional[str]

    # Required at startup
    db_url: Optional[str]
    webhook_url: Optional[str]

    username: str = DEFAULT_USERNAME
    queue_size: int = DEFAULT_QUEUE_SIZE
    watch_timeout_seconds: int = DEFAULT_WATCH_TIMEOUT_SECONDS
    webhook_timeout_seconds: int = DEFAULT_WEBHOOK_TIMEOUT_SECONDS
    db_connect_timeout_seconds: int = DEFAULT_DB_CONNECT_TIMEOUT_SECONDS

    def with_overrides(self, **overrides: Any) -> "OOMWatchConfig":
        """Return a copy with every non-empty override applied (CLI flags win over env)."""
        clean = {k: v for k, v in overrides.items() if v not in (None, "")}
        return replace(self, **clean) if clean else self

    def validate(self) -> None:
        missing = []
        if not self.db_url:
            missing.append("database URL (--db-url / DB_URL / POSTGRES_DSN)")
        if not self.webhook_url:
            missing.append("webhook URL (--webhook-url / WEBHOOK_URL)")
        if missing:
            raise ConfigError("Missing required settings: " + ", ".join(missing))
        if self.queue_size <= 0:
            raise ConfigError(f"queue size must be positive, got {self.queue_size}")
        if self.watch_timeout_seconds <= 0:
            raise ConfigError(f"watch timeout must be positive, got {self.watch_timeout_seconds}")
        if self.db_connect_timeout_seconds <= 0:
            raise ConfigError(f"database connect timeout must be positive, got {self.db_connect_timeout_seconds}")


def load_config() -> OOMWatchConfig:
    return OOMWatchConfig(
        master_url=_env_str("KUBE_MASTER_URL"),
        kubeconfig_path=_env_str("KUBECONFIG"),
        db_url=build_postgres_dsn(),
        webhook_url=_env_str("WEBHOOK_URL"),
        username=_env_str("OOMWATCH_USERNAME") or DEFAULT_USERNAME,
        queue_size=_env_int("OOMWATCH_QUEUE_SIZE", DEFAULT_QUEUE_SIZE),
        watch_timeout_seconds=_env_int("OOMWATCH_WATCH_TIMEOUT_SECONDS", DEFAULT_WATCH_TIMEOUT_SECONDS),
        webhook_timeout_seconds=_env_int("WEBHOOK_TIMEOUT_SECONDS", DEFAULT_WEBHOOK_TIMEOUT_SECONDS),
        db_connect_timeout_seconds=_env_int("DB_CONNECT_TIMEOUT_SECONDS", DEFAULT_DB_CONNECT_TIMEOUT_SECONDS),
    )


def build_postgres_dsn() -> Optional[str]:
    """
    Resolve the process-record database DSN from the environment.

    Precedence: DB_URL, then POSTGRES_DSN, then POSTGRES_HOST/PORT/DB/USER/PASSWORD parts.
    """
    dsn = _env_str("DB_URL") or _env_str("POSTGRES_DSN")
    if dsn:
        return dsn

    host = _env_str("POSTGRES_HOST")
    db = _env_str("POSTGRES_DB")
    user = _env_str("POSTGRES_USER")
    pw = _env_str("POSTGRES_PASSWORD")
    port = _env_int("POSTGRES_PORT", 5432)
    if not (host and db and user and pw):
        return None

    # make_conninfo quotes/escapes special characters (spaces, quotes) in passwords.
    from psycopg.conninfo import make_conninfo

    return make_conninfo(host=host, port=port, dbname=db, user=user, password=pw)
