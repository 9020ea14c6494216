"""
Platform connectivity sources.

A source is the thin adapter over whatever the host offers for "link came up /
went down" notifications. It reports raw edges through two callback
attributes and answers which transport is active; ConnectivityMonitor turns
that into a ConnectivityState signal.
"""

import re
import socket
import threading
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import psutil
from loguru import logger

from reachretry.core.constants import DEFAULT_POLL_INTERVAL, DEFAULT_PROBE_HOSTS, DEFAULT_PROBE_TIMEOUT
from reachretry.core.errors import MonitorUnavailable
from reachretry.core.types import Transport

# Interfaces that never carry "real" connectivity
LOOPBACK_PATTERN = re.compile(r"^lo\d*$|loopback")
TUN_INTERFACE_KEYWORDS = {"tun", "tap", "utun", "wg", "sing", "docker", "veth", "br-", "virbr"}

# Preference order when several links are up at once
TRANSPORT_PRIORITY = [Transport.ETHERNET, Transport.WIFI, Transport.CELLULAR, Transport.OTHER]


class ConnectivitySource(Protocol):
    """Protocol for platform connectivity notifiers."""

    when_reachable: Optional[Callable[["ConnectivitySource"], None]]
    when_unreachable: Optional[Callable[["ConnectivitySource"], None]]

    def start_notifier(self) -> None:
        """Begin reporting edges. Raises MonitorUnavailable if impossible."""
        ...

    def stop_notifier(self) -> None:
        """Stop reporting edges."""
        ...

    def connection(self) -> Transport:
        """Transport currently carrying traffic (Transport.NONE if offline)."""
        ...


def classify_interface(name: str) -> Transport:
    """Guess the transport of an interface from its OS name."""
    lowered = name.lower()
    if lowered.startswith("wl") or "wi-fi" in lowered or "wifi" in lowered or "wireless" in lowered:
        return Transport.WIFI
    if lowered.startswith(("wwan", "rmnet", "pdp_ip", "ppp")) or "cellular" in lowered or "mobile" in lowered:
        return Transport.CELLULAR
    if lowered.startswith(("eth", "en")) or "ethernet" in lowered:
        return Transport.ETHERNET
    return Transport.OTHER


def _is_ignored(name: str) -> bool:
    lowered = name.lower()
    if LOOPBACK_PATTERN.search(lowered):
        return True
    return any(keyword in lowered for keyword in TUN_INTERFACE_KEYWORDS)


class PsutilConnectivitySource:
    """
    Event source built on psutil interface stats.

    A background thread samples the interface table every ``poll_interval``
    seconds and raises ``when_reachable`` / ``when_unreachable`` on the first
    observation and on every change afterwards (including a switch between
    transports while online). No callback is raised when nothing changed.
    """

    def __init__(
        self,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        probe_enabled: bool = True,
        probe_hosts: Optional[Sequence[Sequence]] = None,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
    ):
        self.when_reachable: Optional[Callable[["PsutilConnectivitySource"], None]] = None
        self.when_unreachable: Optional[Callable[["PsutilConnectivitySource"], None]] = None

        self._poll_interval = poll_interval
        self._probe_enabled = probe_enabled
        self._probe_hosts: List[Tuple[str, int]] = [
            (str(host), int(port)) for host, port in (probe_hosts or DEFAULT_PROBE_HOSTS)
        ]
        self._probe_timeout = probe_timeout

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._running = False

        # None until the first sample so the first observation is always reported
        self._reported: Optional[Transport] = None
        self._transport = Transport.NONE

    def start_notifier(self):
        with self._lock:
            if self._running:
                return
            try:
                psutil.net_if_stats()
            except (OSError, psutil.Error) as e:
                raise MonitorUnavailable(f"Cannot read network interfaces: {e}") from e

            self._running = True
            self._reported = None
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._monitor_loop, daemon=True, name="PsutilConnectivitySource")
            self._thread.start()
            logger.info(
                f"[PsutilConnectivitySource] Started (interval={self._poll_interval}s, "
                f"probe={'on' if self._probe_enabled else 'off'})"
            )

    def stop_notifier(self):
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._stop_event.set()
            thread, self._thread = self._thread, None

        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        logger.info("[PsutilConnectivitySource] Stopped")

    def connection(self) -> Transport:
        with self._lock:
            return self._transport

    def _monitor_loop(self):
        try:
            while not self._stop_event.is_set():
                self._check_connectivity()
                self._stop_event.wait(self._poll_interval)
        except Exception as e:
            logger.error(f"[PsutilConnectivitySource] Error in monitor loop: {e}")

    def _check_connectivity(self):
        transport = self._detect_transport()
        if transport is not Transport.NONE and self._probe_enabled and not self._probe():
            transport = Transport.NONE

        with self._lock:
            if not self._running or transport == self._reported:
                self._transport = transport
                return
            previous = self._reported
            self._reported = transport
            self._transport = transport

        logger.debug(f"[PsutilConnectivitySource] Transport change: {previous} -> {transport}")
        if transport is Transport.NONE:
            self._fire(self.when_unreachable)
        else:
            self._fire(self.when_reachable)

    def _detect_transport(self) -> Transport:
        """Pick the best active interface and classify it."""
        try:
            stats = psutil.net_if_stats()
            addrs = psutil.net_if_addrs()
        except (OSError, psutil.Error) as e:
            logger.warning(f"[PsutilConnectivitySource] Could not read interfaces: {e}")
            return Transport.NONE

        candidates: Dict[Transport, str] = {}
        for name, stat in stats.items():
            if not stat.isup or _is_ignored(name):
                continue
            if not self._has_routable_address(addrs.get(name, [])):
                continue
            candidates.setdefault(classify_interface(name), name)

        for transport in TRANSPORT_PRIORITY:
            if transport in candidates:
                return transport
        return Transport.NONE

    @staticmethod
    def _has_routable_address(addresses) -> bool:
        for address in addresses:
            if address.family == socket.AF_INET and not address.address.startswith("169.254."):
                return True
            if address.family == socket.AF_INET6 and not address.address.lower().startswith("fe80"):
                return True
        return False

    def _probe(self) -> bool:
        """TCP connect to well-known hosts; any success counts."""
        for host, port in self._probe_hosts:
            try:
                with socket.create_connection((host, port), timeout=self._probe_timeout):
                    return True
            except OSError:
                continue
        logger.debug("[PsutilConnectivitySource] Probe failed for all hosts")
        return False

    def _fire(self, callback: Optional[Callable]):
        if callback is None:
            return
        try:
            callback(self)
        except Exception as e:
            logger.error(f"[PsutilConnectivitySource] Error in callback: {e}")
