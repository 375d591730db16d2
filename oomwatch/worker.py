from __future__ import annotations

import logging
import queue
import threading
from typing import List, Optional

from oomwatch.config import OOMWatchConfig
from oomwatch.core.errors import DeliveryError, WatchFailed
from oomwatch.core.models import Alert, OOMSignal
from oomwatch.pipeline.correlator import Correlator
from oomwatch.pipeline.signals import SignalExtractor
from oomwatch.pipeline.workload_index import WorkloadIndex
from oomwatch.providers.k8s_provider import K8sProvider
from oomwatch.providers.process_record_provider import ProcessRecordStore
from oomwatch.providers.webhook_provider import WebhookNotifier
from oomwatch.watch.resumable import ResumableWatch

logger = logging.getLogger(__name__)


class OOMWatcher:
    """
    Two watch threads (pods -> index, events -> signal queue) and one consumer.

    The consumer runs on the caller's thread via `run_forever()`. A watch thread that
    dies records its exception; the consumer then raises WatchFailed so the process
    exits and gets restarted by its supervisor.
    """

    def __init__(
        self,
        *,
        provider: K8sProvider,
        store: ProcessRecordStore,
        notifier: WebhookNotifier,
        username: str,
        queue_size: int = 128,
        watch_timeout_seconds: int = 300,
    ) -> None:
        self.notifier = notifier
        self.index = WorkloadIndex()
        self.signals: "queue.Queue[OOMSignal]" = queue.Queue(maxsize=queue_size)
        self.correlator = Correlator(store, self.index, username=username)
        self.pod_watch = ResumableWatch(
            "pods", provider, self.index, base_timeout_seconds=watch_timeout_seconds
        )
        self.event_watch = ResumableWatch(
            "events", provider, SignalExtractor(self.signals), base_timeout_seconds=watch_timeout_seconds
        )
        self._threads: List[threading.Thread] = []
        self._fatal: Optional[BaseException] = None
        self._fatal_kind: Optional[str] = None
        self._fatal_lock = threading.Lock()

    def start(self) -> None:
        for name, watch in (("pod-indexer", self.pod_watch), ("event-watcher", self.event_watch)):
            t = threading.Thread(target=self._run_watch, args=(watch,), name=name, daemon=True)
            t.start()
            self._threads.append(t)

    def _run_watch(self, watch: ResumableWatch) -> None:
        try:
            watch.run()
        except Exception as e:
            logger.error(f"{watch.kind} watch failed: {e}", exc_info=True)
            with self._fatal_lock:
                if self._fatal is None:
                    self._fatal = e
                    self._fatal_kind = watch.kind

    def check_watches(self) -> None:
        with self._fatal_lock:
            fatal, kind = self._fatal, self._fatal_kind
        if fatal is not None:
            raise WatchFailed(f"{kind} watch stopped: {fatal}") from fatal
        for t in self._threads:
            # Exited without a recorded cause, e.g. on a BaseException.
            if not t.is_alive():
                raise WatchFailed(f"{t.name} thread exited")

    def handle_signal(self, signal: OOMSignal) -> Alert:
        """Turn one signal into exactly one delivered (or logged-undeliverable) alert."""
        if signal.is_ok:
            try:
                alert = self.correlator.correlate(signal)
            except Exception as e:
                logger.warning(f"Could not attribute OOM on node {signal.node}, PID {signal.pid}: {e}")
                alert = self.correlator.error_alert(e)
        else:
            alert = self.correlator.error_alert(signal.error or Exception("unknown extraction failure"))

        try:
            self.notifier.send(alert)
            logger.info(f"Alert delivered: {alert.text}")
        except DeliveryError as e:
            logger.error(f"{e} (alert: {alert.text})")
        return alert

    def run_forever(self, *, poll_seconds: float = 1.0) -> None:
        """Start the watches and consume signals until a watch fails."""
        self.start()
        while True:
            self.check_watches()
            try:
                signal = self.signals.get(timeout=poll_seconds)
            except queue.Empty:
                continue
            self.handle_signal(signal)


def build_watcher(cfg: OOMWatchConfig) -> OOMWatcher:
    """Wire the production providers from a validated config."""
    from oomwatch.providers import k8s_provider
    from oomwatch.providers.process_record_provider import PostgresProcessRecordStore

    k8s_provider.configure(master_url=cfg.master_url, kubeconfig_path=cfg.kubeconfig_path)
    return OOMWatcher(
        provider=k8s_provider.get_k8s_provider(),
        store=PostgresProcessRecordStore(str(cfg.db_url), connect_timeout_seconds=cfg.db_connect_timeout_seconds),
        notifier=WebhookNotifier(str(cfg.webhook_url), timeout_seconds=cfg.webhook_timeout_seconds),
        username=cfg.username,
        queue_size=cfg.queue_size,
        watch_timeout_seconds=cfg.watch_timeout_seconds,
    )
