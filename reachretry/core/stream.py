"""
Minimal push streams used to wire connectivity changes to retries.

A Stream is a recipe: nothing runs until subscribe() is called, and every
subscription runs the recipe again. This is what lets retry() re-invoke a
failed operation simply by subscribing once more.

Operators kept deliberately small:
- map / filter / skip: per-subscription value transforms
- retry: resubscribe after every error until disposed
- BehaviorSignal: replay-one, multi-subscriber source
"""

import threading
from typing import Any, Callable, Generic, List, Optional, TypeVar

from loguru import logger

T = TypeVar("T")
R = TypeVar("R")


class Subscription:
    """Handle returned by subscribe(). dispose() is idempotent."""

    def __init__(self, teardown: Optional[Callable[[], None]] = None):
        self._lock = threading.Lock()
        self._disposed = False
        self._teardown = teardown

    @property
    def disposed(self) -> bool:
        with self._lock:
            return self._disposed

    def set_teardown(self, teardown: Optional[Callable[[], None]]):
        """Attach teardown; runs immediately if already disposed."""
        if teardown is None:
            return
        with self._lock:
            if not self._disposed:
                self._teardown = teardown
                return
        teardown()

    def dispose(self):
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            teardown, self._teardown = self._teardown, None
        if teardown:
            teardown()


class SerialSubscription(Subscription):
    """Holds one inner subscription at a time; replacing disposes the previous one."""

    def __init__(self):
        super().__init__()
        self._current: Optional[Subscription] = None

    def replace(self, subscription: Optional[Subscription]):
        with self._lock:
            if self._disposed:
                previous = subscription
            else:
                previous, self._current = self._current, subscription
        if previous is not None:
            previous.dispose()

    def dispose(self):
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            current, self._current = self._current, None
        if current is not None:
            current.dispose()


class Observer:
    """Callback triple. Stops forwarding after a terminal event or stop()."""

    def __init__(
        self,
        on_next: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
        on_completed: Optional[Callable[[], None]] = None,
    ):
        self._on_next = on_next
        self._on_error = on_error
        self._on_completed = on_completed
        self._lock = threading.Lock()
        self._stopped = False

    @property
    def stopped(self) -> bool:
        with self._lock:
            return self._stopped

    def stop(self):
        with self._lock:
            self._stopped = True

    def _terminate(self) -> bool:
        """Mark stopped; True only for the caller that got there first."""
        with self._lock:
            if self._stopped:
                return False
            self._stopped = True
            return True

    def on_next(self, value):
        if self.stopped:
            return
        if self._on_next:
            self._on_next(value)

    def on_error(self, error: BaseException):
        if not self._terminate():
            return
        if self._on_error:
            self._on_error(error)
        else:
            logger.error(f"[Stream] Unhandled stream error: {error!r}")

    def on_completed(self):
        if not self._terminate():
            return
        if self._on_completed:
            self._on_completed()


class Stream(Generic[T]):
    """Lazy push stream built from a subscribe function.

    Args:
        subscribe_fn: Called with an Observer for every subscription. May
            return a Subscription (or None) that tears the work down.
    """

    def __init__(self, subscribe_fn: Callable[[Observer], Optional[Subscription]]):
        self._subscribe_fn = subscribe_fn

    def subscribe(
        self,
        on_next: Optional[Callable[[T], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
        on_completed: Optional[Callable[[], None]] = None,
    ) -> Subscription:
        observer = Observer(on_next, on_error, on_completed)
        subscription = Subscription(observer.stop)
        inner = self._subscribe_fn(observer)
        if inner is not None:

            def teardown():
                observer.stop()
                inner.dispose()

            subscription.set_teardown(teardown)
        return subscription

    # Constructors

    @staticmethod
    def just(value: T) -> "Stream[T]":
        def subscribe(observer: Observer):
            observer.on_next(value)
            observer.on_completed()

        return Stream(subscribe)

    @staticmethod
    def error(error: BaseException) -> "Stream[Any]":
        def subscribe(observer: Observer):
            observer.on_error(error)

        return Stream(subscribe)

    @staticmethod
    def from_callable(fn: Callable[[], T]) -> "Stream[T]":
        """Call ``fn`` on every subscription and emit its result.

        Exceptions raised by ``fn`` become stream errors.
        """

        def subscribe(observer: Observer):
            try:
                result = fn()
            except Exception as e:
                observer.on_error(e)
                return
            observer.on_next(result)
            observer.on_completed()

        return Stream(subscribe)

    # Operators

    def map(self, fn: Callable[[T], R]) -> "Stream[R]":
        def subscribe(observer: Observer):
            def on_next(value):
                try:
                    mapped = fn(value)
                except Exception as e:
                    observer.on_error(e)
                    return
                observer.on_next(mapped)

            return self.subscribe(on_next, observer.on_error, observer.on_completed)

        return Stream(subscribe)

    def filter(self, predicate: Callable[[T], bool]) -> "Stream[T]":
        def subscribe(observer: Observer):
            def on_next(value):
                try:
                    keep = predicate(value)
                except Exception as e:
                    observer.on_error(e)
                    return
                if keep:
                    observer.on_next(value)

            return self.subscribe(on_next, observer.on_error, observer.on_completed)

        return Stream(subscribe)

    def skip(self, count: int) -> "Stream[T]":
        """Drop the first ``count`` values of each subscription."""

        def subscribe(observer: Observer):
            remaining = count

            def on_next(value):
                nonlocal remaining
                if remaining > 0:
                    remaining -= 1
                    return
                observer.on_next(value)

            return self.subscribe(on_next, observer.on_error, observer.on_completed)

        return Stream(subscribe)

    def retry(self) -> "Stream[T]":
        """Resubscribe after every error, forever, until the subscription is disposed.

        Errors raised synchronously during a resubscription are queued and
        handled by the loop instead of recursing.
        """

        def subscribe(observer: Observer):
            serial = SerialSubscription()
            lock = threading.Lock()
            running = False
            pending = False

            def on_error(error: BaseException):
                logger.debug(f"[Stream] Retrying after error: {error!r}")
                attempt()

            def attempt():
                nonlocal running, pending
                with lock:
                    if running:
                        pending = True
                        return
                    running = True
                while True:
                    if serial.disposed:
                        with lock:
                            running = False
                        return
                    serial.replace(self.subscribe(observer.on_next, on_error, observer.on_completed))
                    with lock:
                        if not pending:
                            running = False
                            return
                        pending = False

            attempt()
            return serial

        return Stream(subscribe)


class _SignalSlot:
    """One BehaviorSignal subscriber and the newest version it has been given."""

    def __init__(self, observer: Observer):
        self.observer = observer
        self.lock = threading.RLock()
        self.version = -1
        self.removed = threading.Event()


class BehaviorSignal(Generic[T]):
    """
    Replay-one, multi-subscriber value holder.

    Every subscriber first receives the current value, then each published
    value in publish order. Values are versioned and each subscriber only
    accepts a version newer than the last one it saw, so a late subscriber
    can never observe an older value after a newer one.

    Callbacks run outside the signal lock, each subscriber under its own
    lock: a slow subscriber never blocks ``value``, new subscriptions or
    other threads.
    """

    def __init__(self, initial: T, name: str = "BehaviorSignal"):
        self._lock = threading.Lock()
        self._value = initial
        self._version = 0
        self._slots: List[_SignalSlot] = []
        self._completed = False
        self._name = name

    @property
    def value(self) -> T:
        with self._lock:
            return self._value

    @property
    def completed(self) -> bool:
        with self._lock:
            return self._completed

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._slots)

    def publish(self, value: T):
        with self._lock:
            if self._completed:
                logger.debug(f"[{self._name}] Dropped value after completion: {value}")
                return
            self._value = value
            self._version += 1
            version = self._version
            slots = list(self._slots)
        for slot in slots:
            self._offer(slot, value, version)

    def complete(self):
        with self._lock:
            if self._completed:
                return
            self._completed = True
            slots, self._slots = self._slots, []
        for slot in slots:
            with slot.lock:
                slot.removed.set()
                self._deliver(slot.observer.on_completed)

    def as_stream(self) -> Stream[T]:
        return Stream(self._subscribe)

    def _subscribe(self, observer: Observer) -> Optional[Subscription]:
        slot = _SignalSlot(observer)
        with self._lock:
            completed = self._completed
            if not completed:
                self._slots.append(slot)
                value, version = self._value, self._version
        if completed:
            observer.on_completed()
            return None
        self._offer(slot, value, version)
        return Subscription(lambda: self._remove(slot))

    def _remove(self, slot: _SignalSlot):
        slot.removed.set()
        with self._lock:
            if slot in self._slots:
                self._slots.remove(slot)

    def _offer(self, slot: _SignalSlot, value: T, version: int):
        with slot.lock:
            if slot.removed.is_set() or version <= slot.version:
                return
            slot.version = version
            self._deliver(slot.observer.on_next, value)

    def _deliver(self, callback: Callable, *args):
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"[{self._name}] Error in subscriber callback: {e}")
