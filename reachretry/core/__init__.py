"""Core functionality for reachretry."""

from reachretry.core.config import Config
from reachretry.core.errors import MonitorUnavailable
from reachretry.core.monitor import ConnectivityMonitor
from reachretry.core.retry import BridgeState, ConnectivityRetryBridge, retry_on_reachable
from reachretry.core.stream import BehaviorSignal, Stream, Subscription
from reachretry.core.types import UNREACHABLE, ConnectivityState, Reachable, Transport, Unreachable

__all__ = [
    "BehaviorSignal",
    "BridgeState",
    "Config",
    "ConnectivityMonitor",
    "ConnectivityRetryBridge",
    "ConnectivityState",
    "MonitorUnavailable",
    "Reachable",
    "Stream",
    "Subscription",
    "Transport",
    "UNREACHABLE",
    "Unreachable",
    "retry_on_reachable",
]
