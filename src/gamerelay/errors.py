from __future__ import annotations


class RelayError(Exception):
    """Base class for relay failures that reach the process boundary."""


class ConfigError(RelayError, ValueError):
    """Raised when configuration values are missing, unknown or out of range."""


class BindError(RelayError, OSError):
    """Raised when the UDP socket cannot be bound.

    Carries the host and port that were requested so the operator sees
    exactly what failed.
    """

    def __init__(self, host: str, port: int, cause: OSError) -> None:
        super().__init__(f"Cannot bind UDP socket on {host}:{port}: {cause}")
        self.host = host
        self.port = port
        self.cause = cause


class ReceiveError(RelayError):
    """Raised when the receive loop stops because the socket failed."""
