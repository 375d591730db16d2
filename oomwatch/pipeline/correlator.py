"""Attribute an OOM-killed (node, pid) to a pod."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Callable, Optional

from oomwatch.core.errors import (
    CgroupFormatError,
    IndexNotReady,
    ProcessRecordNotFound,
    UnknownWorkload,
)
from oomwatch.core.models import Alert, OOMSignal, ProcessRecord, WorkloadRecord
from oomwatch.pipeline.workload_index import WorkloadIndex
from oomwatch.providers.process_record_provider import ProcessRecordStore

# e.g. /kubepods/burstable/pod3f1c2b9e-5d1a-4e2b-9c1d-0a1b2c3d4e5f/<container-id>
CGROUP_POD_PATTERN = re.compile(r"/pod([\w\-]+)/")


def extract_uid(cgroup: str) -> str:
    match = CGROUP_POD_PATTERN.search(cgroup or "")
    if match is None:
        raise CgroupFormatError(f"Unknown cgroup format: {cgroup}")
    return match.group(1)


def format_oom_text(record: WorkloadRecord, node: str, pid: int, nspid: Optional[int]) -> str:
    details = f"node: {node}, PID: {pid}"
    if nspid is not None:
        details += f", NSPID: {nspid}"
    return f"OOM in pod {record.namespace}/{record.name} ({details})"


def format_error_text(error: BaseException) -> str:
    return f"Error: {error}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Correlator:
    def __init__(
        self,
        store: ProcessRecordStore,
        index: WorkloadIndex,
        *,
        username: str,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.index = index
        self.username = username
        self.clock = clock

    def find_record(self, node: str, pid: int) -> ProcessRecord:
        record = self.store.find_latest(node, pid, self.clock())
        if record is None:
            raise ProcessRecordNotFound(f"No process record for node {node} and PID {pid}")
        return record

    def resolve(self, uid: str) -> WorkloadRecord:
        if not self.index.ready:
            raise IndexNotReady("Workload index not ready")
        workload = self.index.lookup(uid)
        if workload is None:
            raise UnknownWorkload(f"Pod with UID {uid} is not known")
        return workload

    def correlate(self, signal: OOMSignal) -> Alert:
        """Raises a CorrelationError subclass when the signal cannot be attributed."""
        if not signal.is_ok:
            raise ValueError("correlate() requires a successful signal")
        node, pid = str(signal.node), int(signal.pid or 0)

        record = self.find_record(node, pid)
        uid = extract_uid(record.cgroup)
        workload = self.resolve(uid)
        return Alert(username=self.username, text=format_oom_text(workload, node, pid, record.nspid))

    def error_alert(self, error: BaseException) -> Alert:
        return Alert(username=self.username, text=format_error_text(error))
