"""reachretry - Connectivity monitoring and reachability-gated retries."""

__version__ = "0.1.0"
__author__ = "reachretry contributors"
__description__ = "Retry failed requests once network connectivity returns"

from reachretry.core.errors import MonitorUnavailable
from reachretry.core.monitor import ConnectivityMonitor
from reachretry.core.retry import ConnectivityRetryBridge, retry_on_reachable
from reachretry.core.types import UNREACHABLE, Reachable, Unreachable

__all__ = [
    "ConnectivityMonitor",
    "ConnectivityRetryBridge",
    "MonitorUnavailable",
    "Reachable",
    "Unreachable",
    "UNREACHABLE",
    "retry_on_reachable",
    "__version__",
]
