"""In-memory pod UID index, kept live by the pod watch."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from oomwatch.core.models import WatchNotification, WorkloadRecord

logger = logging.getLogger(__name__)


def record_from_object(obj: Dict[str, Any]) -> Optional[Tuple[str, WorkloadRecord]]:
    """Return (uid, record) for a raw pod object, or None when it has no UID."""
    metadata = obj.get("metadata") or {}
    uid = metadata.get("uid")
    if not uid:
        return None
    return str(uid), WorkloadRecord(name=str(metadata.get("name") or ""), namespace=str(metadata.get("namespace") or ""))


class WorkloadIndex:
    """
    UID -> WorkloadRecord map shared between the pod watch thread (writer) and the
    consumer thread (reader).

    Also acts as the pod watch handler: a snapshot replaces the whole map, ADDED
    upserts, DELETED removes. MODIFIED is ignored since name/namespace never change
    for a UID.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[str, WorkloadRecord] = {}
        self._ready = False

    @property
    def ready(self) -> bool:
        with self._lock:
            return self._ready

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def lookup(self, uid: str) -> Optional[WorkloadRecord]:
        with self._lock:
            return self._records.get(uid)

    def snapshot(self) -> Dict[str, WorkloadRecord]:
        with self._lock:
            return dict(self._records)

    def replace_all(self, records: Dict[str, WorkloadRecord]) -> None:
        with self._lock:
            self._records = dict(records)
            self._ready = True

    def upsert(self, uid: str, record: WorkloadRecord) -> None:
        with self._lock:
            self._records[uid] = record

    def remove(self, uid: str) -> None:
        with self._lock:
            self._records.pop(uid, None)

    # Watch handler interface

    def on_snapshot(self, items: List[Dict[str, Any]]) -> None:
        records: Dict[str, WorkloadRecord] = {}
        for obj in items:
            parsed = record_from_object(obj)
            if parsed is None:
                logger.warning("Skipping listed pod without UID")
                continue
            uid, record = parsed
            records[uid] = record
        self.replace_all(records)
        logger.info(f"Workload index rebuilt with {len(records)} pod(s)")

    def on_notification(self, notification: WatchNotification) -> None:
        if notification.type == "MODIFIED":
            logger.debug(f"Ignoring MODIFIED pod event at resourceVersion {notification.resource_version}")
            return

        if notification.type not in ("ADDED", "DELETED"):
            logger.warning(f"Ignoring unexpected pod watch event type: {notification.type}")
            return

        parsed = record_from_object(notification.object)
        if parsed is None:
            logger.warning(f"Ignoring {notification.type} pod event without UID")
            return
        uid, record = parsed

        if notification.type == "ADDED":
            self.upsert(uid, record)
        else:
            self.remove(uid)
