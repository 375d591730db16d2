"""OOMKilling event filter and pid extraction."""

from __future__ import annotations

import logging
import queue
import re
from typing import Any, Dict, List, Optional, Set

from oomwatch.core.errors import PIDExtractionError
from oomwatch.core.models import MAX_PID, OOMSignal, WatchNotification

logger = logging.getLogger(__name__)

OOM_REASON = "OOMKilling"
NODE_KIND = "Node"

# Node problem detector message, e.g. "Memory cgroup out of memory: Kill process 4821 (python) score 999 ..."
# ASCII digits only; str patterns would otherwise accept any Unicode decimal digit.
PID_PATTERN = re.compile(r"Kill\s+process\s+([0-9]+)", re.ASCII)
# len(str(2**64 - 1)); longer runs cannot be a valid pid and must not reach int().
MAX_PID_DIGITS = 20


def extract_pid(message: str) -> int:
    match = PID_PATTERN.search(message or "")
    if match is None:
        raise PIDExtractionError(f"Event message does not match: {message}")
    digits = match.group(1).lstrip("0") or "0"
    if len(digits) > MAX_PID_DIGITS:
        raise PIDExtractionError(f"PID out of range in event message: {digits[:MAX_PID_DIGITS]}...")
    pid = int(digits)
    if pid > MAX_PID:
        raise PIDExtractionError(f"PID out of range in event message: {digits}")
    return pid


def is_oom_object(obj: Dict[str, Any]) -> bool:
    if obj.get("reason") != OOM_REASON:
        return False
    involved = obj.get("involvedObject") or {}
    return involved.get("kind") == NODE_KIND


def is_oom_event(notification: WatchNotification) -> bool:
    return notification.type == "ADDED" and is_oom_object(notification.object)


def signal_from_event(obj: Dict[str, Any]) -> OOMSignal:
    """Build exactly one signal for an accepted event; extraction failures become failed signals."""
    node = str((obj.get("involvedObject") or {}).get("name") or "")
    try:
        pid = extract_pid(str(obj.get("message") or ""))
    except PIDExtractionError as e:
        return OOMSignal.failed(e)
    return OOMSignal.ok(node, pid)


def _event_uid(obj: Dict[str, Any]) -> str:
    return str((obj.get("metadata") or {}).get("uid") or "")


class SignalExtractor:
    """
    Event watch handler that pushes OOM signals onto a bounded queue (blocking when full).

    The first listing only marks existing OOM events as seen. A relist after cursor
    expiry also emits OOM events that appeared while the cursor was stale, i.e. any
    whose UID was not seen before. The seen set is pruned to each listing.
    """

    def __init__(self, signals: "queue.Queue[OOMSignal]") -> None:
        self.signals = signals
        self._seen: Optional[Set[str]] = None

    def on_snapshot(self, items: List[Dict[str, Any]]) -> None:
        oom_events = [obj for obj in items if is_oom_object(obj)]
        listed = {uid for uid in (_event_uid(obj) for obj in oom_events) if uid}

        if self._seen is None:
            logger.info(f"Skipping {len(oom_events)} OOM event(s) that predate startup")
        else:
            missed = [obj for obj in oom_events if _event_uid(obj) and _event_uid(obj) not in self._seen]
            logger.info(f"Relisted {len(oom_events)} OOM event(s), {len(missed)} missed during resync")
            for obj in missed:
                self._emit(signal_from_event(obj))

        self._seen = listed

    def on_notification(self, notification: WatchNotification) -> None:
        if not is_oom_event(notification):
            return
        uid = str(notification.metadata.get("uid") or "")
        if uid and self._seen is not None:
            self._seen.add(uid)
        self._emit(signal_from_event(notification.object))

    def _emit(self, signal: OOMSignal) -> None:
        if signal.is_ok:
            logger.info(f"OOM kill on node {signal.node}, PID {signal.pid}")
        else:
            logger.warning(f"OOM kill event could not be parsed: {signal.error}")
        self.signals.put(signal)
