from gamerelay.config import (
    GameRelayConfig,
    LoggingConfig,
    RegistryConfig,
    RelayConfig,
    ServerConfig,
    discover_config,
    load_config,
)
from gamerelay.endpoint import ClientEndpoint
from gamerelay.errors import BindError, ConfigError, ReceiveError, RelayError
from gamerelay.registry import ACTIVITY_WINDOW, EndpointRegistry
from gamerelay.router import Action, Broadcast, Ignore, Reply, classify
from gamerelay.server import InboundDatagram, LoopState, RelayStats, ServerLoop
from gamerelay.sweeper import RegistrySweeper

__all__ = [
    "ACTIVITY_WINDOW",
    "Action",
    "BindError",
    "Broadcast",
    "ClientEndpoint",
    "ConfigError",
    "EndpointRegistry",
    "GameRelayConfig",
    "Ignore",
    "InboundDatagram",
    "LoggingConfig",
    "LoopState",
    "ReceiveError",
    "RegistryConfig",
    "RegistrySweeper",
    "RelayConfig",
    "RelayError",
    "RelayStats",
    "Reply",
    "ServerConfig",
    "ServerLoop",
    "classify",
    "discover_config",
    "load_config",
]
