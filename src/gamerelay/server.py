"""UDP receive loop and dispatcher.

``ServerLoop`` binds a datagram endpoint, pulls datagrams off an inbox
queue fed by the protocol callback, refreshes the sender in the
``EndpointRegistry``, classifies the payload and performs the resulting
sends. Per-datagram and per-send failures are logged and contained; only a
bind failure or the socket dying underneath the loop stop the server.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

from gamerelay.config import GameRelayConfig
from gamerelay.endpoint import ClientEndpoint
from gamerelay.errors import BindError, ReceiveError
from gamerelay.registry import Clock, EndpointRegistry
from gamerelay.router import Broadcast, Ignore, Reply, classify
from gamerelay.sweeper import RegistrySweeper

logger = logging.getLogger("gamerelay.server")


@dataclass(frozen=True)
class InboundDatagram:
    """A datagram as handed from the socket callback to the loop."""

    sender: ClientEndpoint
    payload: bytes
    received_at: float


class LoopState(Enum):
    RUNNING = auto()
    STOPPED = auto()


@dataclass
class RelayStats:
    """Counters updated by the loop. Read-only for callers."""

    datagrams_received: int = 0
    dropped: int = 0
    replies_sent: int = 0
    broadcasts: int = 0
    fanout_sends: int = 0
    send_failures: int = 0
    socket_errors: int = 0
    ignored: int = 0


class _RelayProtocol(asyncio.DatagramProtocol):
    """Internal datagram protocol - queues datagrams for the server loop."""

    def __init__(
        self,
        inbox: asyncio.Queue[InboundDatagram | None],
        clock: Clock,
        on_drop: Callable[[ClientEndpoint], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        self._inbox = inbox
        self._clock = clock
        self._on_drop = on_drop
        self._on_error = on_error
        self.transport: asyncio.DatagramTransport | None = None
        self.lost_with: Exception | None = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = transport  # type: ignore[assignment]

    def datagram_received(self, data: bytes, addr: tuple[Any, ...]) -> None:
        sender = ClientEndpoint.from_addr(addr)
        try:
            self._inbox.put_nowait(InboundDatagram(sender, data, self._clock()))
        except asyncio.QueueFull:
            self._on_drop(sender)

    def error_received(self, exc: Exception) -> None:
        # ICMP errors from earlier sends surface here; they never end the loop.
        self._on_error(exc)

    def connection_lost(self, exc: Exception | None) -> None:
        self.lost_with = exc
        self.wake()

    def wake(self) -> None:
        """Unblock a pending ``inbox.get()`` with the ``None`` sentinel."""
        while True:
            try:
                self._inbox.put_nowait(None)
                return
            except asyncio.QueueFull:
                self._inbox.get_nowait()


class ServerLoop:
    """Game-session relay bound to a single UDP socket.

    States:
    - ``LoopState.STOPPED`` until ``start()`` binds the socket
    - ``LoopState.RUNNING`` while bound and receiving
    - ``LoopState.STOPPED`` again, permanently, after ``stop()``, task
      cancellation or a fatal socket error

    Parameters
    ----------
    config : GameRelayConfig | None
        Server, relay and registry settings. Defaults to ``GameRelayConfig()``.
    registry : EndpointRegistry | None
        Registry to share. A new one is built from ``config.registry`` when
        omitted.
    clock : Clock | None
        Time source for a registry built here. Ignored when *registry* is given.
    stop_event : asyncio.Event | None
        Process-wide cancellation signal. Setting it ends the loop; the
        socket is closed once in-flight dispatches finish. ``stop()`` sets
        it too.

    Examples
    --------
    >>> async with ServerLoop(GameRelayConfig(server=ServerConfig(port=0))) as server:
    ...     print(server.local_address)
    0.0.0.0:54321
    """

    def __init__(
        self,
        config: GameRelayConfig | None = None,
        *,
        registry: EndpointRegistry | None = None,
        clock: Clock | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self._config = config or GameRelayConfig()
        self._registry = registry or EndpointRegistry(
            shards=self._config.registry.shards, clock=clock
        )
        self._stop = stop_event or asyncio.Event()
        self._state = LoopState.STOPPED
        self._finished = False
        self._transport: asyncio.DatagramTransport | None = None
        self._protocol: _RelayProtocol | None = None
        self._inbox: asyncio.Queue[InboundDatagram | None] | None = None
        self._sweeper: RegistrySweeper | None = None
        self._stop_watch: asyncio.Task[None] | None = None
        self._runner: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[None]] = set()
        self._in_run = False
        self.stats = RelayStats()

    @property
    def config(self) -> GameRelayConfig:
        return self._config

    @property
    def registry(self) -> EndpointRegistry:
        return self._registry

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def local_address(self) -> ClientEndpoint:
        """Address the socket is bound to, with port 0 resolved."""
        if self._transport is None:
            msg = "Server is not bound"
            raise RuntimeError(msg)
        return ClientEndpoint.from_addr(self._transport.get_extra_info("sockname"))

    async def start(self) -> None:
        """Bind the UDP socket and start background maintenance.

        Raises
        ------
        BindError
            If the socket cannot be bound (port in use, permission denied,
            unresolvable host).
        RuntimeError
            If the loop was already started or has already stopped.
        """
        if self._transport is not None or self._finished:
            msg = "ServerLoop cannot be started twice"
            raise RuntimeError(msg)

        server_cfg = self._config.server
        loop = asyncio.get_running_loop()
        inbox: asyncio.Queue[InboundDatagram | None] = asyncio.Queue(
            maxsize=server_cfg.inbox_capacity or 0
        )

        def make_protocol() -> _RelayProtocol:
            return _RelayProtocol(inbox, self._registry.clock, self._on_drop, self._on_socket_error)

        try:
            transport, protocol = await loop.create_datagram_endpoint(
                make_protocol,
                local_addr=(server_cfg.host, server_cfg.port),
            )
        except OSError as exc:
            logger.error("Failed to bind UDP socket on %s:%s: %s", server_cfg.host, server_cfg.port, exc)
            raise BindError(server_cfg.host, server_cfg.port, exc) from exc

        self._transport = transport
        self._protocol = protocol
        self._inbox = inbox
        self._state = LoopState.RUNNING
        self._stop_watch = loop.create_task(self._wake_when_stopped())

        registry_cfg = self._config.registry
        if registry_cfg.sweep_interval > 0:
            self._sweeper = RegistrySweeper(
                self._registry,
                interval=registry_cfg.sweep_interval,
                max_age=self._config.sweep_max_age,
            )
            self._sweeper.start()

        logger.info("UDP relay listening on %s", self.local_address)

    async def run(self) -> None:
        """Drive the receive cycle until stopped.

        Returns normally on ``stop()`` or when the stop event is set.

        Raises
        ------
        ReceiveError
            If the socket fails while the loop is waiting for datagrams.
        """
        if self._inbox is None or self._finished:
            msg = "start() must be called before run()"
            raise RuntimeError(msg)
        inbox = self._inbox
        concurrent = self._config.server.concurrent_dispatch

        self._in_run = True
        try:
            while not self._stop.is_set():
                datagram = await inbox.get()
                if datagram is None:
                    self._raise_if_lost()
                    break
                if concurrent:
                    self._schedule(datagram)
                else:
                    await self.handle_datagram(datagram)
        finally:
            await self._shutdown()

    async def serve(self) -> None:
        """``start()`` followed by ``run()``."""
        await self.start()
        await self.run()

    def stop(self) -> None:
        """Request shutdown. The loop exits before taking the next datagram.

        Datagrams already taken off the inbox are still answered: the socket
        is closed by the loop after their dispatch tasks finish. A server
        that was started but never run closes it here.
        """
        self._stop.set()
        if self._in_run or self._pending:
            return
        if self._transport is not None and not self._transport.is_closing():
            self._transport.close()

    async def __aenter__(self) -> ServerLoop:
        await self.start()
        self._runner = asyncio.get_running_loop().create_task(self.run())
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.stop()
        if self._runner is not None:
            runner, self._runner = self._runner, None
            await runner

    async def handle_datagram(self, datagram: InboundDatagram) -> None:
        """Register the sender, classify the payload and perform the sends."""
        sender = datagram.sender
        self.stats.datagrams_received += 1
        logger.debug("Received %d bytes from %s", len(datagram.payload), sender)
        try:
            self._registry.touch(sender, at=datagram.received_at)
            match classify(datagram.payload):
                case Reply(message=message):
                    if self._send(message, sender):
                        self.stats.replies_sent += 1
                case Broadcast(message=message):
                    self._broadcast(message, sender)
                case Ignore(reason=reason):
                    self.stats.ignored += 1
                    logger.debug("Ignoring datagram from %s (%s)", sender, reason)
        except Exception:
            logger.exception("Failed to dispatch datagram from %s", sender)

    def _broadcast(self, message: bytes, sender: ClientEndpoint) -> None:
        relay_cfg = self._config.relay
        excluded = sender if relay_cfg.exclude_sender else None
        self.stats.broadcasts += 1
        sent = 0
        for recipient in self._registry.snapshot_live_except(excluded, relay_cfg.activity_window):
            if self._send(message, recipient):
                sent += 1
        self.stats.fanout_sends += sent
        logger.debug("Relayed %d bytes from %s to %d endpoint(s)", len(message), sender, sent)

    def _send(self, message: bytes, recipient: ClientEndpoint) -> bool:
        transport = self._transport
        if transport is None or transport.is_closing():
            self.stats.send_failures += 1
            logger.warning("Socket closed, dropping send to %s", recipient)
            return False
        try:
            transport.sendto(message, recipient.to_addr())
        except (OSError, ValueError) as exc:
            self.stats.send_failures += 1
            logger.warning("Send to %s failed: %s", recipient, exc)
            return False
        return True

    def _schedule(self, datagram: InboundDatagram) -> None:
        task = asyncio.get_running_loop().create_task(self.handle_datagram(datagram))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _on_drop(self, sender: ClientEndpoint) -> None:
        self.stats.dropped += 1
        logger.warning("Inbox full, dropping datagram from %s", sender)

    def _on_socket_error(self, exc: Exception) -> None:
        self.stats.socket_errors += 1
        logger.warning("UDP socket error: %s", exc)

    def _raise_if_lost(self) -> None:
        protocol = self._protocol
        if protocol is not None and protocol.lost_with is not None:
            logger.error("UDP socket lost: %s", protocol.lost_with)
            msg = f"UDP socket lost: {protocol.lost_with}"
            raise ReceiveError(msg) from protocol.lost_with

    async def _wake_when_stopped(self) -> None:
        await self._stop.wait()
        if self._protocol is not None:
            self._protocol.wake()

    async def _shutdown(self) -> None:
        if self._finished:
            return
        self._finished = True
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        if self._sweeper is not None:
            await self._sweeper.stop()
        if self._stop_watch is not None:
            self._stop_watch.cancel()
            await asyncio.gather(self._stop_watch, return_exceptions=True)
        if self._transport is not None and not self._transport.is_closing():
            self._transport.close()
        self._state = LoopState.STOPPED
        logger.info(
            "UDP relay stopped (%d datagrams, %d endpoints known)",
            self.stats.datagrams_received,
            len(self._registry),
        )
