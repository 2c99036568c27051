"""TOML-based configuration for the relay server.

Provides ``load_config`` / ``discover_config`` for loading
``gamerelay.toml`` and a hierarchy of frozen dataclasses for server,
relay, registry and logging settings.

Example ``gamerelay.toml``::

    [server]
    host = "0.0.0.0"
    port = 9999

    [relay]
    activity_window = 120.0
    exclude_sender = false

    [registry]
    shards = 16
    sweep_interval = 60.0
    sweep_after_windows = 3.0

    [logging]
    level = "INFO"
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Literal, TypeAlias, TypeVar

from gamerelay.errors import ConfigError


__all__ = [
    "CONFIG_FILENAME",
    "FormatterName",
    "GameRelayConfig",
    "LoggingConfig",
    "RegistryConfig",
    "RelayConfig",
    "ServerConfig",
    "discover_config",
    "load_config",
]


CONFIG_FILENAME = "gamerelay.toml"

FormatterName: TypeAlias = Literal["verbose", "compact", "minimal"]

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class ServerConfig:
    """Socket and dispatch settings.

    Parameters
    ----------
    host : str
        Address to bind the UDP socket to.
    port : int
        UDP port. ``0`` lets the OS pick one.
    concurrent_dispatch : bool
        Dispatch each datagram as its own task instead of handling them
        one at a time.
    inbox_capacity : int | None
        Maximum datagrams queued between the socket and the loop. ``None``
        for unbounded. When full, new datagrams are dropped.

    Examples
    --------
    >>> ServerConfig(port=7777)
    ServerConfig(host='0.0.0.0', port=7777, concurrent_dispatch=False, inbox_capacity=None)
    """

    host: str = "0.0.0.0"
    port: int = 9999
    concurrent_dispatch: bool = False
    inbox_capacity: int | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 65535:
            msg = f"server.port must be within 0..65535, got {self.port}"
            raise ConfigError(msg)
        if self.inbox_capacity is not None and self.inbox_capacity < 1:
            msg = f"server.inbox_capacity must be >= 1, got {self.inbox_capacity}"
            raise ConfigError(msg)


@dataclass(frozen=True)
class RelayConfig:
    """Broadcast policy.

    Parameters
    ----------
    activity_window : float
        Seconds an endpoint stays eligible for broadcasts after its last
        datagram.
    exclude_sender : bool
        Leave the sender out of its own broadcast fan-out.

    Examples
    --------
    >>> RelayConfig(exclude_sender=True)
    RelayConfig(activity_window=120.0, exclude_sender=True)
    """

    activity_window: float = 120.0
    exclude_sender: bool = False

    def __post_init__(self) -> None:
        if self.activity_window <= 0:
            msg = f"relay.activity_window must be > 0, got {self.activity_window}"
            raise ConfigError(msg)


@dataclass(frozen=True)
class RegistryConfig:
    """Endpoint registry tuning.

    Parameters
    ----------
    shards : int
        Number of lock stripes in the registry.
    sweep_interval : float
        Seconds between background sweeps. ``0`` disables sweeping.
    sweep_after_windows : float
        Entries older than ``activity_window * sweep_after_windows`` are
        evicted by the sweep. Must be at least 1.

    Examples
    --------
    >>> RegistryConfig(sweep_interval=0)
    RegistryConfig(shards=16, sweep_interval=0, sweep_after_windows=3.0)
    """

    shards: int = 16
    sweep_interval: float = 60.0
    sweep_after_windows: float = 3.0

    def __post_init__(self) -> None:
        if self.shards < 1:
            msg = f"registry.shards must be >= 1, got {self.shards}"
            raise ConfigError(msg)
        if self.sweep_interval < 0:
            msg = f"registry.sweep_interval must be >= 0, got {self.sweep_interval}"
            raise ConfigError(msg)
        if self.sweep_after_windows < 1:
            msg = f"registry.sweep_after_windows must be >= 1, got {self.sweep_after_windows}"
            raise ConfigError(msg)


@dataclass(frozen=True)
class LoggingConfig:
    """Console logging settings.

    Parameters
    ----------
    level : str
        Standard ``logging`` level name.
    formatter : FormatterName
        ``"verbose"``, ``"compact"`` or ``"minimal"``.
    colors : bool | None
        Force ANSI colours on or off. ``None`` means colour only on a TTY.
    """

    level: str = "INFO"
    formatter: FormatterName = "verbose"
    colors: bool | None = None

    def __post_init__(self) -> None:
        if self.level.upper() not in _LEVELS:
            msg = f"logging.level must be one of {', '.join(_LEVELS)}, got {self.level!r}"
            raise ConfigError(msg)
        if self.formatter not in ("verbose", "compact", "minimal"):
            msg = f"logging.formatter must be verbose, compact or minimal, got {self.formatter!r}"
            raise ConfigError(msg)


@dataclass(frozen=True)
class GameRelayConfig:
    """Top-level configuration container.

    Typically created via ``load_config()`` but can be constructed manually.

    Examples
    --------
    >>> config = GameRelayConfig()
    >>> config.server.port
    9999
    >>> config.relay.activity_window
    120.0
    """

    server: ServerConfig = field(default_factory=ServerConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def sweep_max_age(self) -> float:
        """Age in seconds past which the background sweep evicts an entry."""
        return self.relay.activity_window * self.registry.sweep_after_windows


T = TypeVar("T")


def _section(cls: type[T], raw: dict[str, Any], name: str) -> T:
    section = raw.get(name, {})
    if not isinstance(section, dict):
        msg = f"[{name}] must be a table"
        raise ConfigError(msg)
    known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    unknown = sorted(set(section) - known)
    if unknown:
        msg = f"Unknown key(s) in [{name}]: {', '.join(unknown)}"
        raise ConfigError(msg)
    return cls(**section)


def discover_config(start: Path | None = None) -> Path | None:
    """Walk up from *start* (default: cwd) looking for ``gamerelay.toml``.

    Returns
    -------
    Path | None
        Path to the discovered config file, or ``None`` if not found.
    """
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(path: Path | None = None) -> GameRelayConfig:
    """Load a ``GameRelayConfig`` from a TOML file.

    If *path* is ``None``, auto-discovers ``gamerelay.toml`` by walking up
    from the current working directory. Returns the default config if no
    file is found.

    Raises
    ------
    FileNotFoundError
        If an explicit *path* is given but does not exist.
    ConfigError
        If the file contains unknown sections, unknown keys or invalid values.
    """
    if path is None:
        discovered = discover_config()
        if discovered is None:
            return GameRelayConfig()
        path = discovered

    if not path.exists():
        msg = f"Config file not found: {path}"
        raise FileNotFoundError(msg)

    with path.open("rb") as f:
        try:
            raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            msg = f"Invalid TOML in {path}: {exc}"
            raise ConfigError(msg) from exc

    unknown_sections = sorted(set(raw) - {"server", "relay", "registry", "logging"})
    if unknown_sections:
        msg = f"Unknown section(s) in {path}: {', '.join(unknown_sections)}"
        raise ConfigError(msg)

    try:
        return GameRelayConfig(
            server=_section(ServerConfig, raw, "server"),
            relay=_section(RelayConfig, raw, "relay"),
            registry=_section(RegistryConfig, raw, "registry"),
            logging=_section(LoggingConfig, raw, "logging"),
        )
    except TypeError as exc:
        raise ConfigError(str(exc)) from exc
