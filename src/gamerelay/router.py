"""Datagram classification.

``classify`` maps a raw datagram payload to the action the server loop
should take. It is pure: no registry access, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias

PING = "PING"
PONG = b"PONG"
MOVE_PREFIX = "MOVE:"


@dataclass(frozen=True)
class Reply:
    """Send ``message`` back to the sender only."""

    message: bytes = PONG


@dataclass(frozen=True)
class Broadcast:
    """Send ``message`` unchanged to every live endpoint."""

    message: bytes


@dataclass(frozen=True)
class Ignore:
    """Drop the datagram."""

    reason: str = "unrecognized"


Action: TypeAlias = Reply | Broadcast | Ignore


def classify(payload: bytes) -> Action:
    """Decide what to do with an inbound payload.

    Keywords are matched case-insensitively after trimming surrounding
    whitespace. Broadcasts carry the original bytes, not the trimmed or
    case-folded text.

    Parameters
    ----------
    payload : bytes
        Raw datagram body.

    Returns
    -------
    Action

    Examples
    --------
    >>> classify(b" ping\\n")
    Reply(message=b'PONG')
    >>> classify(b"Move:x=1")
    Broadcast(message=b'Move:x=1')
    >>> classify(b"hello")
    Ignore(reason='unrecognized')
    """
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError:
        return Ignore("undecodable")

    keyword = text.strip().upper()
    if not keyword:
        return Ignore("empty")
    if keyword == PING:
        return Reply()
    if keyword.startswith(MOVE_PREFIX):
        return Broadcast(payload)
    return Ignore()
