"""
Connectivity Retry Bridge - Gate re-attempts of a failed operation on reachability.

On failure the bridge emits a fallback value right away, then waits for the
monitor to report a *new* Reachable state and re-raises the original failure
into a retry-forever layer, which resubscribes and so re-invokes the operation.

State per subscription:
    IDLE --failure--> WAITING_FOR_REACHABILITY --reachable--> (retry) IDLE
    any --dispose--> DISPOSED

The replayed state at the moment of failure is skipped: only a transition
observed after the failure counts. A failure that happens while already
Reachable therefore waits for the next Reachable edge (for example after a
drop and recovery, or a transport switch).
"""

import threading
from enum import Enum
from typing import Generic, Optional, TypeVar

from loguru import logger

from reachretry.core.monitor import ConnectivityMonitor
from reachretry.core.stream import Observer, Stream, Subscription
from reachretry.core.types import ConnectivityState

T = TypeVar("T")


class BridgeState(Enum):
    """Lifecycle of one bridge subscription."""

    IDLE = "idle"
    WAITING_FOR_REACHABILITY = "waiting_for_reachability"
    DISPOSED = "disposed"

    def __str__(self):
        return self.value


class _GateRun:
    """One attempt: subscribed to the source, and to the monitor after a failure."""

    def __init__(self, bridge: "ConnectivityRetryBridge", observer: Observer):
        self._bridge = bridge
        self._observer = observer
        self._lock = threading.Lock()
        self._state = BridgeState.IDLE
        self._source_sub: Optional[Subscription] = None
        self._wait_sub: Optional[Subscription] = None

    @property
    def state(self) -> BridgeState:
        with self._lock:
            return self._state

    def start(self) -> Subscription:
        self._bridge._enter(self, BridgeState.IDLE)
        sub = self._bridge.source.subscribe(
            self._observer.on_next,
            self._on_failure,
            self._observer.on_completed,
        )
        with self._lock:
            if self._state is not BridgeState.DISPOSED:
                self._source_sub = sub
                sub = None
        if sub is not None:
            sub.dispose()
        return Subscription(self.dispose)

    def _on_failure(self, error: BaseException):
        with self._lock:
            if self._state is not BridgeState.IDLE:
                return
            self._state = BridgeState.WAITING_FOR_REACHABILITY
        self._bridge._enter(self, BridgeState.WAITING_FOR_REACHABILITY)
        self._bridge._record_failure(error)

        self._observer.on_next(self._bridge.fallback_value)

        wait_sub = (
            self._bridge.monitor.observe()
            .skip(1)
            .filter(lambda state: state.reachable)
            .subscribe(
                lambda state: self._on_reachable(error, state),
                self._on_monitor_finished,
                self._on_monitor_finished,
            )
        )
        with self._lock:
            if self._state is BridgeState.WAITING_FOR_REACHABILITY:
                self._wait_sub = wait_sub
                wait_sub = None
        if wait_sub is not None:
            wait_sub.dispose()

    def _on_reachable(self, error: BaseException, state: ConnectivityState):
        with self._lock:
            if self._state is not BridgeState.WAITING_FOR_REACHABILITY:
                return
            self._state = BridgeState.IDLE
            wait_sub, self._wait_sub = self._wait_sub, None
        if wait_sub is not None:
            wait_sub.dispose()

        logger.info(f"[ConnectivityRetryBridge] Connectivity back ({state}), retrying")
        self._bridge._record_retry()
        self._observer.on_error(error)

    def _on_monitor_finished(self, *args):
        with self._lock:
            if self._state is not BridgeState.WAITING_FOR_REACHABILITY:
                return
            self._state = BridgeState.IDLE
            self._wait_sub = None
        logger.info("[ConnectivityRetryBridge] Monitor stopped while waiting; giving up retries")
        self._observer.on_completed()

    def dispose(self):
        with self._lock:
            if self._state is BridgeState.DISPOSED:
                return
            self._state = BridgeState.DISPOSED
            source_sub, self._source_sub = self._source_sub, None
            wait_sub, self._wait_sub = self._wait_sub, None
        for sub in (source_sub, wait_sub):
            if sub is not None:
                sub.dispose()
        self._bridge._enter(self, BridgeState.DISPOSED)


class ConnectivityRetryBridge(Generic[T]):
    """
    Wraps a failing operation so it is retried once per connectivity restoration.

    The bridge never resolves a failure itself: it only delays re-raising it
    until connectivity is plausible, and leaves the resubscription to retry().

    ``state``, ``failure_count`` and ``retry_count`` describe the most recent
    subscription and are meant for a single consumer.
    """

    def __init__(self, source: Stream[T], fallback_value: T, monitor: ConnectivityMonitor):
        self.source = source
        self.fallback_value = fallback_value
        self.monitor = monitor

        self._lock = threading.Lock()
        self._current: Optional[_GateRun] = None
        self._state = BridgeState.IDLE
        self._failure_count = 0
        self._retry_count = 0

    @property
    def state(self) -> BridgeState:
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    @property
    def retry_count(self) -> int:
        with self._lock:
            return self._retry_count

    def stream(self) -> Stream[T]:
        """The gated stream, wrapped in retry-forever."""
        return Stream(self._subscribe_gate).retry()

    def _subscribe_gate(self, observer: Observer) -> Subscription:
        return _GateRun(self, observer).start()

    def _enter(self, run: _GateRun, state: BridgeState):
        with self._lock:
            if state is BridgeState.IDLE:
                self._current = run
            elif run is not self._current:
                # A replaced run being torn down after its retry
                return
            previous, self._state = self._state, state
        if previous is not state:
            logger.debug(f"[ConnectivityRetryBridge] {previous} -> {state}")

    def _record_failure(self, error: BaseException):
        with self._lock:
            self._failure_count += 1
            count = self._failure_count
        logger.warning(
            f"[ConnectivityRetryBridge] Operation failed ({error!r}), "
            f"emitting fallback and waiting for connectivity (failure #{count})"
        )

    def _record_retry(self):
        with self._lock:
            self._retry_count += 1


def retry_on_reachable(source: Stream[T], fallback_value: T, monitor: ConnectivityMonitor) -> Stream[T]:
    """
    Retry ``source`` each time connectivity is restored.

    Args:
        source: Operation stream; resubscribed (re-invoked) on every retry
        fallback_value: Emitted immediately after each failure
        monitor: Connectivity monitor gating the retries

    Returns:
        Stream of source values interleaved with one fallback per failure
    """
    return ConnectivityRetryBridge(source, fallback_value, monitor).stream()
