"""Tests for ConnectivityMonitor."""

import threading
import time
from unittest.mock import MagicMock

import pytest
from conftest import FakeConnectivitySource, wait_until

from reachretry.core.config import Config
from reachretry.core.errors import MonitorUnavailable
from reachretry.core.monitor import ConnectivityMonitor
from reachretry.core.platform_source import PsutilConnectivitySource
from reachretry.core.types import UNREACHABLE, Reachable, Transport


class TestConnectivityMonitor:
    def test_starts_notifier_and_defaults_to_unreachable(self, monitor, fake_source):
        assert fake_source.started is True
        assert monitor.current_state() == UNREACHABLE

    def test_state_follows_source_edges(self, monitor, fake_source):
        fake_source.go_online(Transport.WIFI)
        assert monitor.drain(timeout=2)
        assert monitor.current_state() == Reachable(via_preferred_transport=True)

        fake_source.go_online(Transport.CELLULAR)
        assert monitor.drain(timeout=2)
        assert monitor.current_state() == Reachable(via_preferred_transport=False)

        fake_source.go_offline()
        assert monitor.drain(timeout=2)
        assert monitor.current_state() == UNREACHABLE

    def test_preferred_transports_override(self, fake_source):
        with ConnectivityMonitor(source=fake_source, preferred_transports=["cellular"]) as monitor:
            fake_source.go_online(Transport.CELLULAR)
            monitor.drain(timeout=2)
            assert monitor.current_state() == Reachable(via_preferred_transport=True)

    def test_preferred_transports_from_config(self, fake_source, temp_config_file):
        config = Config(temp_config_file)
        config.set("monitor.preferred_transports", ["ethernet"])

        with ConnectivityMonitor(source=fake_source, config=config) as monitor:
            fake_source.go_online(Transport.WIFI)
            monitor.drain(timeout=2)
            assert monitor.current_state() == Reachable(via_preferred_transport=False)

    def test_wait_until_reported(self, monitor, fake_source):
        assert monitor.wait_until_reported(0.05) is False

        fake_source.go_offline()

        assert monitor.wait_until_reported(2) is True
        assert monitor.current_state() == UNREACHABLE

    def test_observe_replays_current_state(self, monitor, fake_source):
        fake_source.go_online(Transport.ETHERNET)
        monitor.drain(timeout=2)

        values = []
        monitor.observe().subscribe(values.append)

        assert values == [Reachable(via_preferred_transport=True)]

    def test_every_subscriber_gets_replay_then_changes(self, monitor, fake_source):
        early, late = [], []
        monitor.observe().subscribe(early.append)

        fake_source.go_online(Transport.WIFI)
        monitor.drain(timeout=2)
        monitor.observe().subscribe(late.append)

        fake_source.go_offline()
        monitor.drain(timeout=2)

        assert early == [UNREACHABLE, Reachable(True), UNREACHABLE]
        assert late == [Reachable(True), UNREACHABLE]

    def test_delivery_preserves_order(self, monitor, fake_source):
        values = []
        monitor.observe().skip(1).subscribe(values.append)

        for _ in range(50):
            fake_source.go_online(Transport.WIFI)
            fake_source.go_offline()
        monitor.drain(timeout=5)

        # The transport is read when the worker publishes, so only the edge kinds are fixed
        assert [state.reachable for state in values] == [True, False] * 50

    def test_delivery_happens_off_the_calling_thread(self, monitor, fake_source):
        threads = []
        monitor.observe().skip(1).subscribe(lambda state: threads.append(threading.current_thread()))

        fake_source.go_online()
        monitor.drain(timeout=2)

        assert threads
        assert threads[0] is not threading.current_thread()

    def test_dispose_stops_notifier_and_completes_observers(self, fake_source):
        monitor = ConnectivityMonitor(source=fake_source)
        completed = MagicMock()
        monitor.observe().subscribe(on_completed=completed)

        monitor.dispose()
        monitor.dispose()

        assert fake_source.stopped is True
        assert fake_source.when_reachable is None
        assert monitor.disposed is True
        completed.assert_called_once()
        assert monitor.drain(timeout=1) is False

    def test_edges_after_dispose_are_ignored(self, fake_source):
        monitor = ConnectivityMonitor(source=fake_source)
        callback = fake_source.when_reachable
        monitor.dispose()

        callback(fake_source)

        assert monitor.current_state() == UNREACHABLE

    def test_dispose_from_subscriber_callback(self, fake_source):
        monitor = ConnectivityMonitor(source=fake_source)
        completed = threading.Event()

        def on_state(state):
            monitor.dispose()

        monitor.observe().skip(1).subscribe(on_state, on_completed=completed.set)
        fake_source.go_online()

        assert completed.wait(2)
        assert wait_until(lambda: monitor.disposed)

    def test_drain_from_subscriber_callback_returns_false(self, monitor, fake_source):
        results = []
        monitor.observe().skip(1).subscribe(lambda state: results.append(monitor.drain()))

        fake_source.go_online()

        assert wait_until(lambda: results == [False])

    def test_dispose_from_another_monitors_worker_waits_for_its_worker(self, fake_source):
        other_source = FakeConnectivitySource()
        first = ConnectivityMonitor(source=fake_source)
        second = ConnectivityMonitor(source=other_source)
        entered, release, finished, disposing = (threading.Event() for _ in range(4))
        finished_at_return = []
        subscriptions = []

        def slow(state):
            # Leave the signal so only the worker itself is still busy
            subscriptions[0].dispose()
            entered.set()
            release.wait(2)
            finished.set()

        def dispose_second(state):
            disposing.set()
            second.dispose()
            finished_at_return.append(finished.is_set())

        subscriptions.append(second.observe().skip(1).subscribe(slow))
        first.observe().skip(1).subscribe(dispose_second)
        other_source.go_online()
        assert entered.wait(2)

        fake_source.go_online()
        assert disposing.wait(2)
        time.sleep(0.05)
        release.set()

        assert wait_until(lambda: finished_at_return == [True])
        first.dispose()


class TestMonitorUnavailable:
    def test_source_start_failure_is_wrapped(self):
        source = FakeConnectivitySource(fail_on_start=OSError("no netlink"))

        with pytest.raises(MonitorUnavailable) as exc_info:
            ConnectivityMonitor(source=source)

        assert isinstance(exc_info.value.__cause__, OSError)

    def test_monitor_unavailable_propagates_unchanged(self):
        error = MonitorUnavailable("unsupported")
        source = FakeConnectivitySource(fail_on_start=error)

        with pytest.raises(MonitorUnavailable) as exc_info:
            ConnectivityMonitor(source=source)

        assert exc_info.value is error

    def test_default_source_built_from_config(self, temp_config_file, monkeypatch):
        config = Config(temp_config_file)
        config.set("monitor.poll_interval", 0.5)
        config.set("monitor.probe_enabled", False)
        started = MagicMock()
        monkeypatch.setattr(PsutilConnectivitySource, "start_notifier", started)

        monitor = ConnectivityMonitor(config=config)
        try:
            assert isinstance(monitor._source, PsutilConnectivitySource)
            assert monitor._source._poll_interval == 0.5
            assert monitor._source._probe_enabled is False
            started.assert_called_once()
        finally:
            monkeypatch.setattr(PsutilConnectivitySource, "stop_notifier", MagicMock())
            monitor.dispose()

    def test_malformed_probe_hosts_raise_monitor_unavailable(self, temp_config_file):
        config = Config(temp_config_file)
        config.set("monitor.probe_hosts", [["1.1.1.1"]])

        with pytest.raises(MonitorUnavailable) as exc_info:
            ConnectivityMonitor(config=config)

        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_unknown_preferred_transport_raises_monitor_unavailable(self, fake_source, temp_config_file):
        config = Config(temp_config_file)
        config.set("monitor.preferred_transports", ["satellite"])

        with pytest.raises(MonitorUnavailable):
            ConnectivityMonitor(source=fake_source, config=config)

        assert fake_source.started is False
        assert fake_source.when_reachable is None
