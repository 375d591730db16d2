"""Exception types shared across the watcher.

Grouped by how the worker treats them:
- watch failures decide whether a stream resyncs or the process exits
- extraction and correlation failures become user-visible alerts
- delivery failures are only logged
"""

from __future__ import annotations


class ConfigError(Exception):
    """A required setting is missing or invalid. Startup-fatal."""


class ResourceVersionExpired(Exception):
    """The watch cursor is too old (HTTP 410); the stream must be re-listed."""


class WatchError(Exception):
    """The API terminated a watch with an error other than expiry."""

    def __init__(self, message: str, *, code: int | None = None, reason: str | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.reason = reason


class WatchFailed(Exception):
    """A watch thread died; the process should exit and be restarted."""


class PIDExtractionError(ValueError):
    pass


class CorrelationError(Exception):
    """An OOM occurred but could not be attributed to a pod."""


class ProcessRecordNotFound(CorrelationError):
    pass


class CgroupFormatError(CorrelationError):
    pass


class UnknownWorkload(CorrelationError):
    pass


class IndexNotReady(UnknownWorkload):
    pass


class DeliveryError(Exception):
    """Webhook rejected the payload or could not be reached."""
