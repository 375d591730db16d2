"""Kubernetes API client for the cluster-wide pod and event list/watch streams."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol, Tuple, runtime_checkable

from oomwatch.core.errors import ResourceVersionExpired, WatchError
from oomwatch.core.models import WatchNotification

logger = logging.getLogger(__name__)

HTTP_STATUS_GONE = 410
EXPIRED_REASONS = ("Expired", "Gone")

# Resource kind -> CoreV1Api cluster-wide list method (also used with watch=True).
LIST_METHODS = {
    "pods": "list_pod_for_all_namespaces",
    "events": "list_event_for_all_namespaces",
}

_core_v1_api = None
_master_url: Optional[str] = None
_kubeconfig_path: Optional[str] = None
_init_lock = threading.Lock()


@runtime_checkable
class K8sProvider(Protocol):
    def list_resources(self, kind: str) -> Tuple[List[Dict[str, Any]], str]: ...

    def watch_resources(
        self, kind: str, resource_version: str, timeout_seconds: int
    ) -> Iterator[WatchNotification]: ...


class DefaultK8sProvider:
    def list_resources(self, kind: str) -> Tuple[List[Dict[str, Any]], str]:
        return list_resources(kind)

    def watch_resources(self, kind: str, resource_version: str, timeout_seconds: int) -> Iterator[WatchNotification]:
        return watch_resources(kind, resource_version, timeout_seconds)


def get_k8s_provider() -> K8sProvider:
    """Seam for swapping provider implementations (tests use in-memory fakes)."""
    return DefaultK8sProvider()


def configure(*, master_url: Optional[str] = None, kubeconfig_path: Optional[str] = None) -> None:
    """Set connection overrides. Must be called before the first API call to take effect."""
    global _core_v1_api, _master_url, _kubeconfig_path
    with _init_lock:
        _master_url = master_url
        _kubeconfig_path = kubeconfig_path
        _core_v1_api = None


def _get_core_v1():
    """
    Return a cached CoreV1Api client.

    Config resolution order: explicit kubeconfig path, in-cluster service account,
    default kubeconfig. A master URL, when set, overrides the resolved host.
    """
    global _core_v1_api

    if _core_v1_api is not None:
        return _core_v1_api

    with _init_lock:
        if _core_v1_api is not None:
            return _core_v1_api

        from kubernetes import client, config

        configuration = client.Configuration()
        if _kubeconfig_path:
            config.load_kube_config(config_file=_kubeconfig_path, client_configuration=configuration)
        else:
            try:
                config.load_incluster_config(client_configuration=configuration)
            except config.ConfigException:
                try:
                    config.load_kube_config(client_configuration=configuration)
                except config.ConfigException:
                    # A bare master URL is enough for an unauthenticated API server.
                    if not _master_url:
                        raise
        if _master_url:
            configuration.host = _master_url
        logger.info(f"Kubernetes API client initialized for {configuration.host}")

        _core_v1_api = client.CoreV1Api(client.ApiClient(configuration))
        return _core_v1_api


def _list_method(kind: str):
    try:
        name = LIST_METHODS[kind]
    except KeyError:
        raise ValueError(f"Unsupported resource kind: {kind}")
    return getattr(_get_core_v1(), name)


def _api_status(exc: BaseException) -> Optional[int]:
    # kubernetes.client.rest.ApiException carries the HTTP status as `.status`.
    status = getattr(exc, "status", None)
    return status if isinstance(status, int) else None


def is_expired(code: Any, reason: Any) -> bool:
    return code == HTTP_STATUS_GONE or reason in EXPIRED_REASONS


def list_resources(kind: str) -> Tuple[List[Dict[str, Any]], str]:
    """
    List every object of `kind` across all namespaces.

    Returns (items as raw JSON dicts, list resourceVersion).
    """
    method = _list_method(kind)
    resp = method(_preload_content=False)
    try:
        body = json.loads(resp.data)
    finally:
        resp.release_conn()
    items = body.get("items") or []
    resource_version = str((body.get("metadata") or {}).get("resourceVersion") or "")
    return list(items), resource_version


def watch_resources(kind: str, resource_version: str, timeout_seconds: int) -> Iterator[WatchNotification]:
    """
    Open one long-poll watch of `kind` from `resource_version`.

    The iterator ends when the server closes the stream (normally at `timeout_seconds`).
    Raises ResourceVersionExpired when the cursor is too old and WatchError for any
    other in-stream error.
    """
    method = _list_method(kind)
    try:
        resp = method(
            watch=True,
            resource_version=resource_version,
            timeout_seconds=timeout_seconds,
            _preload_content=False,
        )
    except Exception as e:
        if _api_status(e) == HTTP_STATUS_GONE:
            raise ResourceVersionExpired(f"{kind}: resource version {resource_version} expired") from e
        raise

    try:
        for line in iter_lines(resp.stream(amt=None, decode_content=False)):
            yield decode_watch_line(line)
    finally:
        resp.close()
        resp.release_conn()


def iter_lines(chunks: Iterable[bytes]) -> Iterator[str]:
    """Split a chunked watch body into complete newline-delimited JSON lines."""
    buffer = b""
    for chunk in chunks:
        if not chunk:
            continue
        buffer += chunk
        *lines, buffer = buffer.split(b"\n")
        for line in lines:
            if line.strip():
                yield line.decode("utf-8")
    if buffer.strip():
        yield buffer.decode("utf-8")


def decode_watch_line(line: str) -> WatchNotification:
    event = json.loads(line)
    event_type = str(event.get("type") or "")
    obj = event.get("object")
    if not isinstance(obj, dict):
        obj = {}

    if event_type == "ERROR":
        code = obj.get("code")
        reason = obj.get("reason")
        message = obj.get("message")
        if is_expired(code, reason):
            raise ResourceVersionExpired(f"{reason}: {message}")
        raise WatchError(f"Watch error {code} {reason}: {message}", code=code, reason=reason)

    metadata = obj.get("metadata") or {}
    return WatchNotification(
        type=event_type,
        resource_version=str(metadata.get("resourceVersion") or ""),
        object=obj,
    )
