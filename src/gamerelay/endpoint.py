"""Remote peer identity.

Provides ``ClientEndpoint``, a frozen dataclass identifying a UDP peer by
host, port and (for IPv6 link-local peers) interface scope. Equality and
hashing are structural so it can key the endpoint registry directly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

_IPV6_PATTERN = re.compile(r"^\[(?P<host>[^\]%]+)(?:%(?P<scope>\d+))?\]:(?P<port>\d+)$")
_IPV4_PATTERN = re.compile(r"^(?P<host>[^:\[\]]+):(?P<port>\d+)$")


@dataclass(frozen=True)
class ClientEndpoint:
    """Immutable identity of a remote UDP peer.

    Parameters
    ----------
    host : str
        IP address the datagram came from.
    port : int
        UDP source port.
    scope_id : int
        IPv6 interface index. Non-zero only for link-local peers, where the
        same address can exist on several interfaces.

    Examples
    --------
    >>> a = ClientEndpoint("127.0.0.1", 5000)
    >>> a == ClientEndpoint("127.0.0.1", 5000)
    True
    >>> str(a)
    '127.0.0.1:5000'
    """

    host: str
    port: int
    scope_id: int = 0

    @staticmethod
    def from_addr(addr: tuple[Any, ...]) -> ClientEndpoint:
        """Build an endpoint from an asyncio datagram ``addr`` tuple.

        IPv6 sockets report ``(host, port, flowinfo, scope_id)``. Flow info is
        per-packet and dropped; the scope is kept so replies to link-local
        peers leave through the right interface.

        Examples
        --------
        >>> ClientEndpoint.from_addr(("fe80::1", 9000, 0, 3))
        ClientEndpoint(host='fe80::1', port=9000, scope_id=3)
        """
        scope_id = int(addr[3]) if len(addr) >= 4 else 0
        return ClientEndpoint(host=str(addr[0]), port=int(addr[1]), scope_id=scope_id)

    def to_addr(self) -> tuple[Any, ...]:
        """Return the address tuple accepted by ``sendto``."""
        if self.scope_id:
            return (self.host, self.port, 0, self.scope_id)
        return (self.host, self.port)

    @property
    def is_ipv6(self) -> bool:
        return ":" in self.host

    def __str__(self) -> str:
        if self.is_ipv6:
            scope = f"%{self.scope_id}" if self.scope_id else ""
            return f"[{self.host}{scope}]:{self.port}"
        return f"{self.host}:{self.port}"

    @staticmethod
    def parse(raw: str) -> ClientEndpoint:
        """Parse ``host:port``, ``[v6host]:port`` or ``[v6host%scope]:port`` text.

        Raises
        ------
        ValueError
            If *raw* is not a well-formed endpoint or the port is out of range.

        Examples
        --------
        >>> ClientEndpoint.parse("[::1]:7000").host
        '::1'
        """
        match = _IPV6_PATTERN.match(raw) or _IPV4_PATTERN.match(raw)
        if match is None:
            msg = f"Invalid endpoint: expected 'host:port', got: {raw!r}"
            raise ValueError(msg)
        port = int(match.group("port"))
        if port > 65535:
            msg = f"Invalid endpoint port {port} in {raw!r}"
            raise ValueError(msg)
        scope = match.groupdict().get("scope")
        return ClientEndpoint(host=match.group("host"), port=port, scope_id=int(scope or 0))
