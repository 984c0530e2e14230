"""
Tests for xlat464.config module.
"""

import pytest

from xlat464.config import (
    CLAT_INTERFACE_NAME,
    RuntimeConfig,
    apply_config_file,
    load_config_file,
    save_default_config,
    validate_interface_name,
)
from xlat464.exceptions import ConfigError, InvalidInterfaceNameError


class TestValidateInterfaceName:
    """Tests for validate_interface_name."""

    @pytest.mark.parametrize("name", ["rmnet0", "clat", "v4-rmnet_data0", "a" * 15])
    def test_valid(self, name):
        """Usable names are returned unchanged."""
        assert validate_interface_name(name) == name

    @pytest.mark.parametrize("name", ["", "a" * 16, "eth/0", "rm net0"])
    def test_invalid(self, name):
        """Empty, overlong and malformed names are rejected."""
        with pytest.raises(InvalidInterfaceNameError):
            validate_interface_name(name)


class TestRuntimeConfig:
    """Tests for RuntimeConfig."""

    def test_defaults(self):
        """Defaults match the documented values."""
        config = RuntimeConfig()

        assert config.clat_iface == CLAT_INTERFACE_NAME
        assert config.reap_stale_clat is False
        config.validate()

    @pytest.mark.parametrize(
        "field,value",
        [
            ("poll_interval", 0),
            ("daemon_timeout", -1.0),
            ("stop_grace", -0.5),
            ("notify_timeout", 0),
        ],
    )
    def test_validate_ranges(self, field, value):
        """Out-of-range timings raise ConfigError."""
        config = RuntimeConfig()
        setattr(config, field, value)

        with pytest.raises(ConfigError):
            config.validate()

    def test_validate_interface(self):
        """A bad upstream name is a ConfigError."""
        with pytest.raises(ConfigError):
            RuntimeConfig(upstream_iface="bad name").validate()


class TestConfigFile:
    """Tests for YAML config loading."""

    def test_missing_file(self, tmp_path):
        """A missing file yields an empty dict."""
        assert load_config_file(str(tmp_path / "none.yaml")) == {}

    def test_default_round_trip(self, tmp_path):
        """The generated default file loads and applies cleanly."""
        path = tmp_path / "config.yaml"
        assert save_default_config(str(path))

        data = load_config_file(str(path))
        config = RuntimeConfig()
        apply_config_file(config, data)

        assert config.clat_iface == "clat"
        assert config.daemon_timeout == 10.0
        assert config.poll_interval == 1.0
        assert config.notify_timeout == 5.0

    def test_invalid_yaml(self, tmp_path):
        """Malformed YAML raises ConfigError."""
        path = tmp_path / "config.yaml"
        path.write_text("daemon: [unclosed\n")

        with pytest.raises(ConfigError):
            load_config_file(str(path))

    def test_apply_values(self):
        """File values fill in settings left at their defaults."""
        config = RuntimeConfig()
        apply_config_file(config, {
            "upstream_iface": "rmnet_data0",
            "status_file": "/run/xlat464/status.json",
            "daemon": {"path": "/usr/sbin/clatd", "timeout": 4, "reap_stale_clat": True},
            "monitor": {"poll_interval": 0.5},
            "notify": {"timeout": 1.5},
            "logging": {"level": "DEBUG", "to_file": False},
        })

        assert config.upstream_iface == "rmnet_data0"
        assert config.status_file == "/run/xlat464/status.json"
        assert config.clatd_path == "/usr/sbin/clatd"
        assert config.daemon_timeout == 4.0
        assert config.reap_stale_clat is True
        assert config.poll_interval == 0.5
        assert config.notify_timeout == 1.5
        assert config.log_level == "DEBUG"
        assert config.log_to_file is False

    def test_cli_takes_precedence(self):
        """Values already set from the command line are kept."""
        config = RuntimeConfig(upstream_iface="wwan0", daemon_timeout=2.0)
        apply_config_file(config, {
            "upstream_iface": "rmnet0",
            "daemon": {"timeout": 30},
        })

        assert config.upstream_iface == "wwan0"
        assert config.daemon_timeout == 2.0

    def test_bad_number(self):
        """Non-numeric timings raise ConfigError."""
        with pytest.raises(ConfigError):
            apply_config_file(RuntimeConfig(), {"monitor": {"poll_interval": "fast"}})
