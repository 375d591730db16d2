"""Domain models shared by the watch, correlation and notification layers.

Kubernetes payloads stay as plain dicts (`WatchNotification.object`) because only a
handful of fields are read and the raw JSON shape is stable across API versions.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_PID = 2**64 - 1


class BaseModelStrict(BaseModel):
    model_config = ConfigDict(extra="forbid")


class WorkloadRecord(BaseModelStrict):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    namespace: str


class WatchNotification(BaseModelStrict):
    type: str
    resource_version: str = ""
    object: Dict[str, Any] = Field(default_factory=dict)

    @property
    def metadata(self) -> Dict[str, Any]:
        md = self.object.get("metadata")
        return md if isinstance(md, dict) else {}


class ProcessRecord(BaseModelStrict):
    hostname: str
    pid: int = Field(ge=0, le=MAX_PID)
    ts: Optional[datetime] = None
    cgroup: str
    nspid: Optional[int] = None

    @field_validator("ts")
    @classmethod
    def _ensure_timezone_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        if isinstance(v, datetime) and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class Alert(BaseModelStrict):
    username: str
    text: str

    def to_payload(self) -> Dict[str, str]:
        return {"username": self.username, "text": self.text}


@dataclass(frozen=True)
class OOMSignal:
    """
    One qualifying OOMKilling event.

    Exactly one of (node, pid) or error is set. Use `OOMSignal.ok` / `OOMSignal.failed`.
    """

    node: Optional[str] = None
    pid: Optional[int] = None
    error: Optional[Exception] = None

    def __post_init__(self) -> None:
        if self.error is not None:
            if self.node is not None or self.pid is not None:
                raise ValueError("failed OOMSignal must not carry node/pid")
            return
        if self.node is None or self.pid is None:
            raise ValueError("OOMSignal requires node and pid, or an error")
        if not 0 <= self.pid <= MAX_PID:
            raise ValueError(f"pid out of range: {self.pid}")

    @classmethod
    def ok(cls, node: str, pid: int) -> "OOMSignal":
        return cls(node=node, pid=pid)

    @classmethod
    def failed(cls, error: Exception) -> "OOMSignal":
        return cls(error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None
