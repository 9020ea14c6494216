"""Core types and enums."""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Union


class Transport(Enum):
    """Kind of link currently carrying traffic."""

    WIFI = "wifi"
    ETHERNET = "ethernet"
    CELLULAR = "cellular"
    OTHER = "other"
    NONE = "none"

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class Reachable:
    """Connectivity is present.

    ``via_preferred_transport`` records whether the active link is one of the
    low-cost transports (e.g. Wi-Fi) rather than a metered fallback.
    """

    via_preferred_transport: bool = False

    @property
    def reachable(self) -> bool:
        return True

    def __str__(self):
        kind = "preferred" if self.via_preferred_transport else "metered"
        return f"reachable ({kind})"


@dataclass(frozen=True)
class Unreachable:
    """No connectivity."""

    @property
    def reachable(self) -> bool:
        return False

    def __str__(self):
        return "unreachable"


ConnectivityState = Union[Reachable, Unreachable]

UNREACHABLE = Unreachable()


def parse_transports(names: Iterable[str]) -> frozenset:
    """Map configured transport names (e.g. ``["wifi"]``) to Transport members.

    Raises:
        ValueError: If a name is not a known transport
    """
    return frozenset(Transport(str(name).lower()) for name in names)


def state_for(transport: Transport, preferred: frozenset) -> Reachable:
    """Build the Reachable state for the given active transport."""
    return Reachable(via_preferred_transport=transport in preferred)
