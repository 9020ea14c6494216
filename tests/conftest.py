"""Shared fixtures: a scriptable connectivity source and a monitor built on it."""

import tempfile
import time
from pathlib import Path

import pytest

from reachretry.core.monitor import ConnectivityMonitor
from reachretry.core.types import Transport


class FakeConnectivitySource:
    """Platform source driven by the test instead of the OS."""

    def __init__(self, fail_on_start: Exception = None):
        self.when_reachable = None
        self.when_unreachable = None
        self.started = False
        self.stopped = False
        self.transport = Transport.NONE
        self._fail_on_start = fail_on_start

    def start_notifier(self):
        if self._fail_on_start:
            raise self._fail_on_start
        self.started = True

    def stop_notifier(self):
        self.stopped = True

    def connection(self) -> Transport:
        return self.transport

    def go_online(self, transport: Transport = Transport.WIFI):
        self.transport = transport
        if self.when_reachable:
            self.when_reachable(self)

    def go_offline(self):
        self.transport = Transport.NONE
        if self.when_unreachable:
            self.when_unreachable(self)


def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until true or timeout."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def fake_source():
    return FakeConnectivitySource()


@pytest.fixture
def monitor(fake_source):
    monitor = ConnectivityMonitor(source=fake_source)
    yield monitor
    monitor.dispose()


@pytest.fixture
def temp_config_file():
    """Create a temporary config file."""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False) as f:
        config_path = Path(f.name)
    yield config_path
    if config_path.exists():
        config_path.unlink()
