"""Liveness bookkeeping for remote endpoints.

``EndpointRegistry`` maps each ``ClientEndpoint`` that has sent a datagram
to the monotonic time it was last heard from. The map is lock-striped: keys
are spread across independent shards, each guarded by its own lock, so
writers for different endpoints never contend on a single global lock and
the registry stays safe when datagrams are dispatched from several tasks or
threads.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from typing import TypeAlias

from gamerelay.endpoint import ClientEndpoint

logger = logging.getLogger("gamerelay.registry")

ACTIVITY_WINDOW = 120.0
"""Seconds an endpoint stays live after its last datagram."""

DEFAULT_SHARDS = 16

Clock: TypeAlias = Callable[[], float]


class _Shard:
    __slots__ = ("lock", "entries")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.entries: dict[ClientEndpoint, float] = {}


class EndpointRegistry:
    """Concurrent map of endpoint to last-seen timestamp.

    Entries age out logically: an endpoint is *live* while
    ``now - last_seen <= window``. Nothing is removed unless ``sweep`` is
    called.

    Parameters
    ----------
    shards : int
        Number of lock stripes. Default is 16.
    clock : Callable[[], float] | None
        Time source in seconds. Defaults to ``time.monotonic``.

    Examples
    --------
    >>> registry = EndpointRegistry()
    >>> alice = ClientEndpoint("10.0.0.2", 40000)
    >>> registry.touch(alice)
    >>> list(registry.snapshot_live_except())
    [ClientEndpoint(host='10.0.0.2', port=40000, scope_id=0)]
    """

    def __init__(self, *, shards: int = DEFAULT_SHARDS, clock: Clock | None = None) -> None:
        if shards < 1:
            msg = f"shards must be >= 1, got {shards}"
            raise ValueError(msg)
        self._shards = tuple(_Shard() for _ in range(shards))
        self._clock: Clock = clock or time.monotonic

    @property
    def clock(self) -> Clock:
        return self._clock

    def _shard_for(self, endpoint: ClientEndpoint) -> _Shard:
        return self._shards[hash(endpoint) % len(self._shards)]

    def touch(self, endpoint: ClientEndpoint, at: float | None = None) -> None:
        """Record the current time as the last-seen time for *endpoint*.

        *at* overrides the clock reading, e.g. with the time a queued
        datagram arrived. The stored timestamp never moves backwards, so
        racing callers leave the latest observation in place.
        """
        now = self._clock() if at is None else at
        shard = self._shard_for(endpoint)
        with shard.lock:
            previous = shard.entries.get(endpoint)
            if previous is None:
                logger.debug("New endpoint %s", endpoint)
                shard.entries[endpoint] = now
            elif now > previous:
                shard.entries[endpoint] = now

    def last_seen(self, endpoint: ClientEndpoint) -> float | None:
        shard = self._shard_for(endpoint)
        with shard.lock:
            return shard.entries.get(endpoint)

    def is_live(self, endpoint: ClientEndpoint, window: float = ACTIVITY_WINDOW) -> bool:
        seen = self.last_seen(endpoint)
        return seen is not None and self._clock() - seen <= window

    def snapshot_live_except(
        self,
        excluded: ClientEndpoint | None = None,
        window: float = ACTIVITY_WINDOW,
    ) -> Iterator[ClientEndpoint]:
        """Iterate every endpoint heard from within *window* seconds.

        The cut-off is read when this method is called, not when iteration
        starts. Each shard is copied under its lock and then released, so the
        result is a best-effort view: entries touched concurrently may or may
        not appear.

        Parameters
        ----------
        excluded : ClientEndpoint | None
            Endpoint to leave out of the result, typically the sender.
        window : float
            Liveness window in seconds.

        Returns
        -------
        Iterator[ClientEndpoint]
            A single-use generator.
        """
        return self._iter_live(self._clock(), window, excluded)

    def _iter_live(
        self, now: float, window: float, excluded: ClientEndpoint | None
    ) -> Iterator[ClientEndpoint]:
        for shard in self._shards:
            with shard.lock:
                entries = list(shard.entries.items())
            for endpoint, seen in entries:
                if endpoint != excluded and now - seen <= window:
                    yield endpoint

    def sweep(self, max_age: float) -> int:
        """Remove entries not refreshed within *max_age* seconds.

        Returns
        -------
        int
            Number of entries removed.
        """
        now = self._clock()
        removed = 0
        for shard in self._shards:
            with shard.lock:
                stale = [ep for ep, seen in shard.entries.items() if now - seen > max_age]
                for endpoint in stale:
                    del shard.entries[endpoint]
            removed += len(stale)
        return removed

    def __contains__(self, endpoint: object) -> bool:
        if not isinstance(endpoint, ClientEndpoint):
            return False
        return self.last_seen(endpoint) is not None

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.entries)
        return total
