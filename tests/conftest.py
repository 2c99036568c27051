"""Shared fixtures and helpers for gamerelay tests."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import AsyncIterator, Iterator
from typing import Any

import pytest

from gamerelay import (
    ClientEndpoint,
    GameRelayConfig,
    RegistryConfig,
    ServerConfig,
    ServerLoop,
)


class FakeClock:
    """Manually advanced, thread-safe time source."""

    def __init__(self, start: float = 1000.0) -> None:
        self._now = start
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self._now += seconds


class _PeerProtocol(asyncio.DatagramProtocol):
    def __init__(self) -> None:
        self.received: asyncio.Queue[tuple[bytes, tuple[Any, ...]]] = asyncio.Queue()

    def datagram_received(self, data: bytes, addr: tuple[Any, ...]) -> None:
        self.received.put_nowait((data, addr))


class UdpPeer:
    """A game client stand-in bound to its own loopback port."""

    def __init__(
        self,
        transport: asyncio.DatagramTransport,
        protocol: _PeerProtocol,
        target: ClientEndpoint,
    ) -> None:
        self._transport = transport
        self._protocol = protocol
        self._target = target

    @classmethod
    async def open(cls, target: ClientEndpoint) -> UdpPeer:
        loop = asyncio.get_running_loop()
        transport, protocol = await loop.create_datagram_endpoint(
            _PeerProtocol, local_addr=("127.0.0.1", 0)
        )
        return cls(transport, protocol, target)

    @property
    def endpoint(self) -> ClientEndpoint:
        return ClientEndpoint.from_addr(self._transport.get_extra_info("sockname"))

    def send(self, data: bytes) -> None:
        self._transport.sendto(data, self._target.to_addr())

    async def recv(self, timeout: float = 2.0) -> bytes:
        data, _ = await asyncio.wait_for(self._protocol.received.get(), timeout)
        return data

    async def expect_silence(self, timeout: float = 0.2) -> None:
        try:
            data, _ = await asyncio.wait_for(self._protocol.received.get(), timeout)
        except TimeoutError:
            return
        pytest.fail(f"Unexpected datagram: {data!r}")

    def close(self) -> None:
        self._transport.close()


@pytest.fixture(autouse=True)
def _reset_gamerelay_logger() -> Iterator[None]:
    yield
    relay_logger = logging.getLogger("gamerelay")
    for handler in list(relay_logger.handlers):
        relay_logger.removeHandler(handler)
    relay_logger.setLevel(logging.NOTSET)
    relay_logger.propagate = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> GameRelayConfig:
    return GameRelayConfig(
        server=ServerConfig(host="127.0.0.1", port=0),
        registry=RegistryConfig(sweep_interval=0),
    )


@pytest.fixture
async def server(config: GameRelayConfig, clock: FakeClock) -> AsyncIterator[ServerLoop]:
    async with ServerLoop(config, clock=clock) as srv:
        yield srv


@pytest.fixture
async def peers(server: ServerLoop) -> AsyncIterator[Any]:
    opened: list[UdpPeer] = []
    target = ClientEndpoint("127.0.0.1", server.local_address.port)

    async def open_peer() -> UdpPeer:
        peer = await UdpPeer.open(target)
        opened.append(peer)
        return peer

    yield open_peer
    for peer in opened:
        peer.close()
