"""Errors raised by the connectivity layer."""


class MonitorUnavailable(RuntimeError):
    """Raised when connectivity monitoring cannot be started on this host."""

    pass
