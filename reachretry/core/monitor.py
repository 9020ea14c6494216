"""Connectivity Monitor - Replay-one signal of ConnectivityState over a platform source."""

import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Iterable, Optional

from loguru import logger

from reachretry.core.config import Config
from reachretry.core.constants import DEFAULT_PREFERRED_TRANSPORTS, MONITOR_THREAD_NAME
from reachretry.core.errors import MonitorUnavailable
from reachretry.core.platform_source import ConnectivitySource, PsutilConnectivitySource
from reachretry.core.stream import BehaviorSignal, Stream
from reachretry.core.types import UNREACHABLE, ConnectivityState, parse_transports, state_for


class ConnectivityMonitor:
    """
    Owns one platform connectivity source and republishes its edges.

    Guarantees:
    - current_state() is UNREACHABLE until the source reports anything
    - observe() replays the current state to every new subscriber
    - Edges are published from a single background worker, in the order the
      source raised them, so the caller's thread never waits on the
      transport query
    - dispose() stops the source and completes every observer
    """

    def __init__(
        self,
        source: Optional[ConnectivitySource] = None,
        config: Optional[Config] = None,
        preferred_transports: Optional[Iterable[str]] = None,
    ):
        """
        Create the monitor and start the platform notifier.

        Args:
            source: Platform source; defaults to PsutilConnectivitySource built from config
            config: Optional Config providing monitor.* settings
            preferred_transports: Transport names counted as low-cost (overrides config)

        Raises:
            MonitorUnavailable: If the source cannot be created or started
        """
        if preferred_transports is None:
            preferred_transports = (
                config.get("monitor.preferred_transports", DEFAULT_PREFERRED_TRANSPORTS)
                if config
                else DEFAULT_PREFERRED_TRANSPORTS
            )

        # Bad settings surface the same way as a platform that cannot be watched
        try:
            self._preferred = parse_transports(preferred_transports)
            if source is None:
                source = self._create_default_source(config)
        except (ValueError, TypeError) as e:
            raise MonitorUnavailable(f"Invalid connectivity monitor settings: {e}") from e
        self._source = source

        self._lock = threading.Lock()
        self._disposed = False
        self._reported = threading.Event()
        self._signal: BehaviorSignal[ConnectivityState] = BehaviorSignal(UNREACHABLE, name="ConnectivityMonitor")

        # Single worker keeps the publish order identical to the raise order
        self._thread_prefix = f"{MONITOR_THREAD_NAME}.{id(self):x}"
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=self._thread_prefix)

        source.when_reachable = self._on_reachable
        source.when_unreachable = self._on_unreachable

        try:
            source.start_notifier()
        except MonitorUnavailable:
            self._executor.shutdown(wait=False)
            raise
        except Exception as e:
            self._executor.shutdown(wait=False)
            raise MonitorUnavailable(f"Failed to start connectivity notifier: {e}") from e

        logger.info(
            f"[ConnectivityMonitor] Started (preferred={sorted(str(t) for t in self._preferred)})"
        )

    @staticmethod
    def _create_default_source(config: Optional[Config]) -> ConnectivitySource:
        if config is None:
            return PsutilConnectivitySource()
        kwargs = {}
        for key, option in (
            ("poll_interval", "monitor.poll_interval"),
            ("probe_enabled", "monitor.probe_enabled"),
            ("probe_hosts", "monitor.probe_hosts"),
            ("probe_timeout", "monitor.probe_timeout"),
        ):
            value = config.get(option)
            if value is not None:
                kwargs[key] = value
        return PsutilConnectivitySource(**kwargs)

    def current_state(self) -> ConnectivityState:
        return self._signal.value

    def observe(self) -> Stream[ConnectivityState]:
        return self._signal.as_stream()

    def wait_until_reported(self, timeout: Optional[float] = None) -> bool:
        """Wait for the first state published from the platform (not the UNREACHABLE default)."""
        return self._reported.wait(timeout)

    @property
    def disposed(self) -> bool:
        with self._lock:
            return self._disposed

    def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every edge queued so far has been published.

        Returns:
            True if the queue drained, False on timeout or after dispose.
            Always False when called on the worker thread itself.
        """
        if self._on_worker():
            # Our own no-op would queue behind the callback that is waiting on it
            return False
        with self._lock:
            if self._disposed:
                return False
            future = self._executor.submit(lambda: None)
        try:
            future.result(timeout=timeout)
            return True
        except FutureTimeoutError:
            return False

    def dispose(self):
        """Stop the notifier and complete all observers. Safe to call twice."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True

        try:
            self._source.stop_notifier()
        except Exception as e:
            logger.error(f"[ConnectivityMonitor] Error stopping notifier: {e}")
        finally:
            self._source.when_reachable = None
            self._source.when_unreachable = None

        # Disposing from a subscriber callback runs on the worker itself
        self._executor.shutdown(wait=not self._on_worker())
        self._signal.complete()
        logger.info("[ConnectivityMonitor] Disposed")

    def _on_worker(self) -> bool:
        return threading.current_thread().name.startswith(f"{self._thread_prefix}_")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()
        return False

    # Source callbacks (raised on the source's own thread)

    def _on_reachable(self, source: ConnectivitySource):
        self._enqueue(self._publish_reachable)

    def _on_unreachable(self, source: ConnectivitySource):
        self._enqueue(self._publish, UNREACHABLE)

    def _enqueue(self, fn, *args):
        with self._lock:
            if self._disposed:
                logger.debug("[ConnectivityMonitor] Suppressed edge (disposed)")
                return
            self._executor.submit(self._run_safe, fn, *args)

    def _publish_reachable(self):
        self._publish(state_for(self._source.connection(), self._preferred))

    def _publish(self, state: ConnectivityState):
        logger.info(f"[ConnectivityMonitor] State: {state}")
        self._signal.publish(state)
        self._reported.set()

    @staticmethod
    def _run_safe(fn, *args):
        try:
            fn(*args)
        except Exception as e:
            logger.error(f"[ConnectivityMonitor] Error publishing state: {e}")
