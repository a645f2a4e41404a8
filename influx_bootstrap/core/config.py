import logging
import sys
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Look for .env in the directory the bootstrapper is invoked from
_env_file = Path.cwd() / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=_env_file, env_prefix="BOOTSTRAP_", extra="ignore")

    # Credentials record (provisioned before the container starts)
    credentials_file: str = "/home/rctrl/influx/credentials.toml"

    # External tools
    daemon_command: str = "influxd"
    cli_command: str = "influx"

    # Daemon output, relative to the invoking working directory
    daemon_log_file: str = ".devcontainer/influxd.log"

    # Readiness polling against GET {influx_host}/health
    influx_host: str = "http://localhost:8086"
    readiness_timeout_seconds: float = 40.0
    readiness_poll_interval_seconds: float = 1.0
    health_request_timeout_seconds: float = 2.0

    # Timeout for `influx setup` / `influx auth list`
    command_timeout_seconds: float = 60.0

    # Run-once installer
    installer_path: str = "~/setup.sh"
    marker_file: str = "~/.influx-bootstrap.done"

    # Optional shell file with `export INFLUX_*=...` lines for later sessions
    env_file: str | None = None

    # Stop at the first failed step instead of attempting the rest
    fail_fast: bool = False

    log_level: str = "INFO"

    @property
    def credentials_path(self) -> Path:
        return Path(self.credentials_file).expanduser()

    @property
    def installer_file(self) -> Path:
        return Path(self.installer_path).expanduser()

    @property
    def marker_path(self) -> Path:
        return Path(self.marker_file).expanduser()

    @property
    def env_path(self) -> Path | None:
        """Return the env file path, or None when exports are not written."""
        if not self.env_file:
            return None
        return Path(self.env_file).expanduser()


def validate_settings(settings: Settings) -> None:
    """Validate settings and print helpful error messages."""
    errors = []

    if settings.readiness_timeout_seconds <= 0:
        errors.append("BOOTSTRAP_READINESS_TIMEOUT_SECONDS must be greater than zero")
    if settings.readiness_poll_interval_seconds <= 0:
        errors.append("BOOTSTRAP_READINESS_POLL_INTERVAL_SECONDS must be greater than zero")
    if settings.command_timeout_seconds <= 0:
        errors.append("BOOTSTRAP_COMMAND_TIMEOUT_SECONDS must be greater than zero")
    if not settings.daemon_command.strip():
        errors.append("BOOTSTRAP_DAEMON_COMMAND must not be empty")
    if not settings.cli_command.strip():
        errors.append("BOOTSTRAP_CLI_COMMAND must not be empty")
    if not settings.influx_host.startswith(("http://", "https://")):
        errors.append(f"BOOTSTRAP_INFLUX_HOST must be an http(s) URL, got {settings.influx_host!r}")

    if settings.readiness_poll_interval_seconds > settings.readiness_timeout_seconds:
        logging.warning(
            "Readiness poll interval (%ss) exceeds the timeout (%ss) - only one probe will run",
            settings.readiness_poll_interval_seconds,
            settings.readiness_timeout_seconds,
        )

    if not settings.credentials_path.is_file():
        logging.warning(
            "Credentials file %s does not exist yet - load step will fail",
            settings.credentials_path,
        )

    if errors:
        for error in errors:
            logging.error("Configuration error: %s", error)
        sys.exit(1)


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    validate_settings(settings)
    return settings
