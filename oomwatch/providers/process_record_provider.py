"""Read-only access to the per-host process snapshot table (`records`).

The table is written by an external collector; this module only queries it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from oomwatch.core.models import ProcessRecord

# Pids are reused over time, so only the newest snapshot not after `now` is trusted.
LATEST_RECORD_SQL = """
    SELECT cgroup, nspid, ts
    FROM records
    WHERE
        hostname = %s AND
        pid = %s AND
        ts <= %s
    ORDER BY ts DESC
    LIMIT 1
"""


@runtime_checkable
class ProcessRecordStore(Protocol):
    def find_latest(self, hostname: str, pid: int, now: datetime) -> Optional[ProcessRecord]: ...


def _connect(dsn: str, connect_timeout_seconds: int):
    import psycopg

    return psycopg.connect(dsn, connect_timeout=connect_timeout_seconds)


class PostgresProcessRecordStore:
    def __init__(self, dsn: str, *, connect_timeout_seconds: int = 10) -> None:
        self.dsn = dsn
        self.connect_timeout_seconds = connect_timeout_seconds

    def find_latest(self, hostname: str, pid: int, now: datetime) -> Optional[ProcessRecord]:
        with _connect(self.dsn, self.connect_timeout_seconds) as conn:
            row = conn.execute(LATEST_RECORD_SQL, (hostname, pid, now)).fetchone()
        if row is None:
            return None
        cgroup, nspid, ts = row[0], row[1], row[2]
        return ProcessRecord(
            hostname=hostname,
            pid=pid,
            ts=ts,
            cgroup=str(cgroup or ""),
            nspid=int(nspid) if nspid is not None else None,
        )
