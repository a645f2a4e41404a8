"""Shell exports of the bootstrapped connection values.

Later shells in the container source this file to get the same variables
the bootstrapper worked with.
"""

import logging
import os
import shlex
from pathlib import Path

from influx_bootstrap.services.credentials import CredentialsRecord

logger = logging.getLogger(__name__)


def environment_values(
    credentials_file: Path, record: CredentialsRecord, token: str | None = None
) -> dict[str, str]:
    return {
        "CREDENTIALS_FILE": str(credentials_file),
        "INFLUX_USER": record.user,
        "INFLUX_PASSWORD": record.password,
        "INFLUX_ORG": record.org,
        "INFLUX_BUCKET": record.bucket,
        "INFLUX_RETENTION": record.retention,
        "INFLUX_TOKEN": token if token is not None else record.token,
    }


def render_env_exports(values: dict[str, str]) -> str:
    return "".join(f"export {name}={shlex.quote(value)}\n" for name, value in values.items())


def write_env_file(path: Path, values: dict[str, str]) -> None:
    """Write exports readable only by the current user."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(render_env_exports(values))
    os.chmod(path, 0o600)
    logger.info("Wrote %d environment exports to %s", len(values), path)
