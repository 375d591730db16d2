"""
Resumable list-then-watch loop.

One instance per watched resource kind. The loop lists a snapshot, then repeatedly
long-polls from the last seen resourceVersion. An expired cursor triggers a full
re-list; any other failure escapes `run()` and is treated as fatal by the caller.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from oomwatch.core.errors import ResourceVersionExpired
from oomwatch.core.models import WatchNotification
from oomwatch.providers.k8s_provider import K8sProvider

logger = logging.getLogger(__name__)

DEFAULT_BASE_TIMEOUT_SECONDS = 300


class WatchHandler(Protocol):
    def on_snapshot(self, items: List[Dict[str, Any]]) -> None: ...

    def on_notification(self, notification: WatchNotification) -> None: ...


@dataclass
class WatchCursor:
    resource_version: str = ""
    position: int = 0
    resyncs: int = 0

    def reset(self, resource_version: str) -> None:
        self.resource_version = resource_version
        self.position = 0
        self.resyncs += 1

    def advance(self, resource_version: str) -> None:
        if resource_version:
            self.resource_version = resource_version
        self.position += 1


def randomized_timeout(base_seconds: int, rng: Optional[random.Random] = None) -> int:
    """Timeout in [base, 2*base) so that many watchers do not reconnect in lockstep."""
    r = (rng or random).random()
    return int(base_seconds * (r + 1.0))


class ResumableWatch:
    def __init__(
        self,
        kind: str,
        provider: K8sProvider,
        handler: WatchHandler,
        *,
        base_timeout_seconds: int = DEFAULT_BASE_TIMEOUT_SECONDS,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.kind = kind
        self.provider = provider
        self.handler = handler
        self.base_timeout_seconds = base_timeout_seconds
        self.cursor = WatchCursor()
        self._rng = rng

    def run(self) -> None:
        """Run until a fatal error. Never returns normally."""
        while True:
            try:
                self._sync_and_watch()
            except ResourceVersionExpired as e:
                logger.info(f"{self.kind}: {e}; restarting from a fresh list")
                continue

    def _sync_and_watch(self) -> None:
        items, resource_version = self.provider.list_resources(self.kind)
        self.cursor.reset(resource_version)
        logger.info(f"{self.kind}: listed {len(items)} object(s) at resourceVersion {resource_version}")
        self.handler.on_snapshot(items)

        while True:
            self.watch_once()

    def watch_once(self) -> None:
        """One long-poll from the current cursor; returns when the server closes the stream."""
        timeout_seconds = randomized_timeout(self.base_timeout_seconds, self._rng)
        logger.info(
            f"{self.kind}: watching since {self.cursor.resource_version} (timeout {timeout_seconds}s)"
        )
        for notification in self.provider.watch_resources(self.kind, self.cursor.resource_version, timeout_seconds):
            self.cursor.advance(notification.resource_version)
            self.handler.on_notification(notification)
