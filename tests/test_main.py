"""
Tests for the xlat464 command line and pre-flight checks.
"""

import pytest

from xlat464.__main__ import build_parser, build_service, config_from_args
from xlat464.config import STATUS_FILE, RuntimeConfig
from xlat464.daemon import ClatdControl
from xlat464.exceptions import InterfaceError
from xlat464.links import PollingConnectivityMonitor
from xlat464.notify import BroadcastNotifier, CompositeNotifier
from xlat464 import preflight


class TestCommandLine:
    """Tests for argument handling."""

    def test_cli_overrides_file(self, tmp_path):
        """Command-line values win over the config file."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text(
            "upstream_iface: rmnet0\n"
            "daemon:\n"
            "  timeout: 30\n"
            "monitor:\n"
            "  poll_interval: 2.5\n"
        )
        args = build_parser().parse_args([
            "--iface", "wwan0",
            "--daemon-timeout", "4",
            "--config", str(config_path),
        ])

        config = config_from_args(args)

        assert config.upstream_iface == "wwan0"
        assert config.daemon_timeout == 4.0
        assert config.poll_interval == 2.5

    def test_file_supplies_iface(self, tmp_path):
        """The upstream can come from the config file alone."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text("upstream_iface: rmnet_data0\n")
        args = build_parser().parse_args(["--config", str(config_path)])

        assert config_from_args(args).upstream_iface == "rmnet_data0"

    def test_status_file_flag_without_path(self, tmp_path):
        """A bare --status-file uses the default status path."""
        args = build_parser().parse_args([
            "--iface", "rmnet0",
            "--status-file",
            "--config", str(tmp_path / "none.yaml"),
        ])

        assert config_from_args(args).status_file == STATUS_FILE

    def test_status_file_off_by_default(self, tmp_path):
        """Without the flag no status file is written."""
        args = build_parser().parse_args([
            "--iface", "rmnet0", "--config", str(tmp_path / "none.yaml"),
        ])

        assert config_from_args(args).status_file is None

    def test_build_service_wiring(self, tmp_path):
        """The host-backed collaborators are assembled from the config."""
        config = RuntimeConfig(
            upstream_iface="rmnet0",
            clatd_path="/usr/sbin/clatd",
            status_file=str(tmp_path / "status.json"),
        )

        service = build_service(config)

        assert isinstance(service.connectivity, PollingConnectivityMonitor)
        assert service.connectivity.iface == "rmnet0"
        assert isinstance(service.daemon, ClatdControl)
        assert service.daemon.clatd_path == "/usr/sbin/clatd"
        assert isinstance(service.machine._notifier, CompositeNotifier)

    def test_build_service_without_status_file(self):
        """Without a status file only the broadcaster is used."""
        service = build_service(RuntimeConfig(upstream_iface="rmnet0"))

        assert isinstance(service.machine._notifier, BroadcastNotifier)


class TestPreflight:
    """Tests for pre-flight checks."""

    def test_clatd_binary(self, tmp_path):
        """Executable files pass, missing ones fail."""
        binary = tmp_path / "clatd"
        binary.write_text("#!/bin/sh\n")
        binary.chmod(0o755)

        assert preflight.check_clatd_binary(str(binary))[0]
        assert not preflight.check_clatd_binary(str(tmp_path / "missing"))[0]

    def test_sysfs(self, tmp_path):
        """A readable directory passes the interface list check."""
        assert preflight.check_sysfs_available(str(tmp_path))[0]
        assert not preflight.check_sysfs_available(str(tmp_path / "missing"))[0]

    def test_missing_upstream_is_warning(self, monkeypatch):
        """An absent upstream interface only warns."""
        monkeypatch.setattr(preflight, "check_root_privileges", lambda: (True, "root"))
        monkeypatch.setattr(preflight, "check_sysfs_available", lambda: (True, "ok"))
        monkeypatch.setattr(preflight, "check_clatd_binary", lambda path: (True, "ok"))
        monkeypatch.setattr(
            preflight, "check_interface_exists", lambda iface: (False, "not present yet")
        )

        warnings = preflight.validate_startup("rmnet0", "/usr/sbin/clatd")

        assert warnings == ["Upstream interface: not present yet"]

    def test_critical_failure_raises(self, monkeypatch):
        """A missing daemon binary blocks startup."""
        monkeypatch.setattr(preflight, "check_root_privileges", lambda: (True, "root"))
        monkeypatch.setattr(preflight, "check_sysfs_available", lambda: (True, "ok"))
        monkeypatch.setattr(preflight, "check_clatd_binary", lambda path: (False, "missing"))
        monkeypatch.setattr(preflight, "check_interface_exists", lambda iface: (True, "ok"))

        with pytest.raises(InterfaceError) as exc_info:
            preflight.validate_startup("rmnet0", "/usr/sbin/clatd")

        assert "Translation daemon" in str(exc_info.value)
