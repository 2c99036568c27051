from __future__ import annotations

from pathlib import Path

import pytest

from gamerelay.config import (
    CONFIG_FILENAME,
    GameRelayConfig,
    LoggingConfig,
    RegistryConfig,
    RelayConfig,
    ServerConfig,
    discover_config,
    load_config,
)
from gamerelay.errors import ConfigError


# ---------------------------------------------------------------------------
# Config dataclass defaults
# ---------------------------------------------------------------------------


class TestServerConfig:
    def test_defaults(self) -> None:
        cfg = ServerConfig()
        assert cfg.host == "0.0.0.0"
        assert cfg.port == 9999
        assert cfg.concurrent_dispatch is False
        assert cfg.inbox_capacity is None

    def test_frozen(self) -> None:
        cfg = ServerConfig()
        with pytest.raises(AttributeError):
            cfg.port = 1  # type: ignore[misc]

    @pytest.mark.parametrize("port", [-1, 65536])
    def test_port_range(self, port: int) -> None:
        with pytest.raises(ConfigError):
            ServerConfig(port=port)

    def test_inbox_capacity_positive(self) -> None:
        with pytest.raises(ConfigError):
            ServerConfig(inbox_capacity=0)


class TestRelayConfig:
    def test_defaults(self) -> None:
        cfg = RelayConfig()
        assert cfg.activity_window == 120.0
        assert cfg.exclude_sender is False

    def test_window_positive(self) -> None:
        with pytest.raises(ConfigError):
            RelayConfig(activity_window=0)


class TestRegistryConfig:
    def test_defaults(self) -> None:
        cfg = RegistryConfig()
        assert cfg.shards == 16
        assert cfg.sweep_interval == 60.0
        assert cfg.sweep_after_windows == 3.0

    def test_invalid(self) -> None:
        with pytest.raises(ConfigError):
            RegistryConfig(shards=0)
        with pytest.raises(ConfigError):
            RegistryConfig(sweep_interval=-1)
        with pytest.raises(ConfigError):
            RegistryConfig(sweep_after_windows=0.5)


class TestLoggingConfig:
    def test_defaults(self) -> None:
        cfg = LoggingConfig()
        assert cfg.level == "INFO"
        assert cfg.formatter == "verbose"
        assert cfg.colors is None

    def test_level_case_insensitive(self) -> None:
        assert LoggingConfig(level="debug").level == "debug"

    def test_invalid(self) -> None:
        with pytest.raises(ConfigError):
            LoggingConfig(level="LOUD")
        with pytest.raises(ConfigError):
            LoggingConfig(formatter="json")  # type: ignore[arg-type]


class TestGameRelayConfig:
    def test_all_defaults(self) -> None:
        cfg = GameRelayConfig()
        assert cfg.server == ServerConfig()
        assert cfg.relay == RelayConfig()
        assert cfg.registry == RegistryConfig()
        assert cfg.logging == LoggingConfig()

    def test_sweep_max_age(self) -> None:
        cfg = GameRelayConfig(
            relay=RelayConfig(activity_window=10),
            registry=RegistryConfig(sweep_after_windows=2.5),
        )
        assert cfg.sweep_max_age == 25.0

    def test_config_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            ServerConfig(port=70000)


# ---------------------------------------------------------------------------
# TOML loading
# ---------------------------------------------------------------------------


class TestLoadConfig:
    def test_full_file(self, tmp_path: Path) -> None:
        path = tmp_path / CONFIG_FILENAME
        path.write_text(
            """
[server]
host = "127.0.0.1"
port = 7000
concurrent_dispatch = true
inbox_capacity = 256

[relay]
activity_window = 30.0
exclude_sender = true

[registry]
shards = 4
sweep_interval = 0

[logging]
level = "DEBUG"
formatter = "compact"
colors = false
"""
        )
        cfg = load_config(path)
        assert cfg.server == ServerConfig(
            host="127.0.0.1", port=7000, concurrent_dispatch=True, inbox_capacity=256
        )
        assert cfg.relay == RelayConfig(activity_window=30.0, exclude_sender=True)
        assert cfg.registry.shards == 4
        assert cfg.registry.sweep_interval == 0
        assert cfg.registry.sweep_after_windows == 3.0
        assert cfg.logging == LoggingConfig(level="DEBUG", formatter="compact", colors=False)

    def test_partial_file_keeps_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "relay.toml"
        path.write_text("[server]\nport = 12000\n")
        cfg = load_config(path)
        assert cfg.server.port == 12000
        assert cfg.server.host == "0.0.0.0"
        assert cfg.relay == RelayConfig()

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.toml"
        path.write_text("")
        assert load_config(path) == GameRelayConfig()

    def test_missing_explicit_path(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.toml")

    def test_unknown_key(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.toml"
        path.write_text("[server]\nprot = 1\n")
        with pytest.raises(ConfigError, match="prot"):
            load_config(path)

    def test_unknown_section(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.toml"
        path.write_text("[cluster]\nhost = 'x'\n")
        with pytest.raises(ConfigError, match="cluster"):
            load_config(path)

    def test_section_must_be_table(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.toml"
        path.write_text("server = 5\n")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_invalid_value(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.toml"
        path.write_text("[relay]\nactivity_window = -5\n")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.toml"
        path.write_text("[server\n")
        with pytest.raises(ConfigError):
            load_config(path)


class TestDiscoverConfig:
    def test_walks_up(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("[server]\nport = 1234\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert discover_config(nested) == (tmp_path / CONFIG_FILENAME).resolve()

    def test_not_found(self, tmp_path: Path) -> None:
        nested = tmp_path / "x"
        nested.mkdir()
        found = discover_config(nested)
        assert found is None or not found.is_relative_to(tmp_path)

    def test_load_config_without_path_uses_discovery(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("[server]\nport = 4321\n")
        monkeypatch.chdir(tmp_path)
        assert load_config().server.port == 4321
