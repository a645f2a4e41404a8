"""Tests for shell export rendering."""

import stat

from influx_bootstrap.services.credentials import CredentialsRecord
from influx_bootstrap.services.environment import (
    environment_values,
    render_env_exports,
    write_env_file,
)


def _record() -> CredentialsRecord:
    return CredentialsRecord(
        user="rctrl", password="p w'x", org="o", bucket="b", retention="30d", token="PLACEHOLDER"
    )


class TestEnvironmentValues:
    def test_uses_discovered_token(self, tmp_path):
        values = environment_values(tmp_path / "credentials.toml", _record(), "abc123")
        assert values["INFLUX_TOKEN"] == "abc123"
        assert values["INFLUX_USER"] == "rctrl"
        assert values["CREDENTIALS_FILE"] == str(tmp_path / "credentials.toml")
        assert list(values) == [
            "CREDENTIALS_FILE",
            "INFLUX_USER",
            "INFLUX_PASSWORD",
            "INFLUX_ORG",
            "INFLUX_BUCKET",
            "INFLUX_RETENTION",
            "INFLUX_TOKEN",
        ]

    def test_falls_back_to_record_token(self, tmp_path):
        values = environment_values(tmp_path / "credentials.toml", _record())
        assert values["INFLUX_TOKEN"] == "PLACEHOLDER"


class TestRenderEnvExports:
    def test_quotes_values(self):
        rendered = render_env_exports({"INFLUX_USER": "rctrl", "INFLUX_PASSWORD": "p w'x"})
        assert rendered == (
            "export INFLUX_USER=rctrl\n"
            "export INFLUX_PASSWORD='p w'\"'\"'x'\n"
        )

    def test_empty_value(self):
        assert render_env_exports({"INFLUX_TOKEN": ""}) == "export INFLUX_TOKEN=''\n"


class TestWriteEnvFile:
    def test_writes_private_file(self, tmp_path):
        path = tmp_path / "env" / "influx.env"
        write_env_file(path, {"INFLUX_TOKEN": "abc123"})

        assert path.read_text() == "export INFLUX_TOKEN=abc123\n"
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_overwrites_existing(self, tmp_path):
        path = tmp_path / "influx.env"
        path.write_text("export STALE=1\n")
        write_env_file(path, {"INFLUX_TOKEN": "abc123"})
        assert path.read_text() == "export INFLUX_TOKEN=abc123\n"
