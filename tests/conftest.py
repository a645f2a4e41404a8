"""Pytest configuration and fixtures for bootstrap tests."""

import logging
from pathlib import Path

import pytest

from influx_bootstrap.core.config import Settings, get_settings

CREDENTIALS_TEXT = (
    "# InfluxDB credentials for rctrl\n"
    'user = "rctrl"\n'
    'password = "pw"\n'
    'org = "o"\n'
    'bucket = "b"\n'
    'retention = "30d"\n'
    'token = "PLACEHOLDER"\n'
)

AUTH_LIST_OUTPUT = (
    "ID\t\t\tDescription\t\tToken\t\tUser Name\tUser ID\t\t\tPermissions\n"
    "0a1b2c3d4e5f6a7b\trctrl2's Token\tzzz999\trctrl2\t0b1c2d3e4f5a6b7c\t[read:orgs]\n"
    "0c1d2e3f4a5b6c7d\trctrl's Token\tabc123\trctrl\t0d1e2f3a4b5c6d7e\t[read:orgs write:buckets]\n"
)


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Settings are cached per process; reset them between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """The CLI reconfigures the root logger; undo that after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def credentials_text() -> str:
    return CREDENTIALS_TEXT


@pytest.fixture
def auth_list_output() -> str:
    return AUTH_LIST_OUTPUT


@pytest.fixture
def credentials_file(tmp_path: Path) -> Path:
    path = tmp_path / "influx" / "credentials.toml"
    path.parent.mkdir()
    path.write_text(CREDENTIALS_TEXT)
    return path


@pytest.fixture
def installer(tmp_path: Path) -> Path:
    path = tmp_path / "home" / "setup.sh"
    path.parent.mkdir()
    path.write_text("#!/usr/bin/env bash\n")
    return path


@pytest.fixture
def settings(tmp_path: Path, credentials_file: Path, installer: Path) -> Settings:
    """Settings pointing every path into tmp_path, with fast readiness polling."""
    return Settings(
        credentials_file=str(credentials_file),
        daemon_log_file=str(tmp_path / ".devcontainer" / "influxd.log"),
        installer_path=str(installer),
        marker_file=str(tmp_path / "home" / ".influx-bootstrap.done"),
        readiness_timeout_seconds=0.5,
        readiness_poll_interval_seconds=0.01,
        command_timeout_seconds=5.0,
    )
