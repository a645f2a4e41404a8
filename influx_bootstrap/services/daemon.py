"""Daemon launch and readiness polling.

The daemon is started detached and never joined. Readiness is a bounded
poll of the daemon's health endpoint rather than a fixed sleep.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path

import httpx

from influx_bootstrap.core.errors import (
    BootstrapCancelledError,
    DaemonStartError,
    ReadinessTimeoutError,
)

logger = logging.getLogger(__name__)

HEALTH_PATH = "/health"


@dataclass
class DaemonHandle:
    """What the bootstrapper keeps of the process it launched."""

    pid: int
    command: str
    log_file: Path
    process: subprocess.Popen | None = None

    def exit_code(self) -> int | None:
        """Return the exit code if the daemon has already exited."""
        if self.process is None:
            return None
        return self.process.poll()


def start_daemon(command: str, log_file: Path) -> DaemonHandle:
    """Start the daemon in its own session with output sent to ``log_file``."""
    try:
        argv = shlex.split(command)
    except ValueError as e:
        raise DaemonStartError(f"Cannot parse daemon command {command!r}: {e}") from e
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Starting %s (log: %s)", command, log_file)
    try:
        with open(log_file, "wb") as log:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=log,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
    except OSError as e:
        raise DaemonStartError(f"Failed to launch {command}: {e.strerror or e}") from e

    logger.info("%s started with pid %d", command, process.pid)
    return DaemonHandle(pid=process.pid, command=command, log_file=log_file, process=process)


def check_health(host: str, timeout: float = 2.0) -> bool:
    """Return True if the daemon reports a passing health check."""
    try:
        resp = httpx.get(host.rstrip("/") + HEALTH_PATH, timeout=timeout)
    except httpx.HTTPError as e:
        logger.debug("Health check failed: %s", type(e).__name__)
        return False
    if resp.status_code != 200:
        logger.debug("Health check returned HTTP %d", resp.status_code)
        return False
    try:
        body = resp.json()
    except ValueError:
        return False
    return isinstance(body, dict) and body.get("status") == "pass"


def wait_until_ready(
    host: str,
    timeout: float,
    interval: float = 1.0,
    cancel_event: threading.Event | None = None,
    daemon: DaemonHandle | None = None,
    request_timeout: float = 2.0,
) -> float:
    """Poll the health endpoint until it passes.

    Returns the seconds waited. Raises ReadinessTimeoutError once ``timeout``
    elapses, BootstrapCancelledError when ``cancel_event`` is set, and
    DaemonStartError if the launched daemon exits while we wait.
    """
    cancel_event = cancel_event or threading.Event()
    started = time.monotonic()
    deadline = started + timeout
    attempt = 0

    logger.info("Waiting up to %ss for %s to become ready...", timeout, host)
    while True:
        if cancel_event.is_set():
            raise BootstrapCancelledError("Readiness wait cancelled")

        attempt += 1
        if check_health(host, timeout=request_timeout):
            waited = time.monotonic() - started
            logger.info("Daemon ready after %.1fs (%d attempt(s))", waited, attempt)
            return waited

        if daemon is not None:
            code = daemon.exit_code()
            if code is not None:
                raise DaemonStartError(
                    f"{daemon.command} exited with code {code} before becoming ready "
                    f"(see {daemon.log_file})"
                )

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ReadinessTimeoutError(
                f"Daemon at {host} not ready after {timeout}s ({attempt} attempt(s))"
            )
        logger.debug("  Attempt %d - not ready yet, retrying in %ss", attempt, interval)
        if cancel_event.wait(min(interval, remaining)):
            raise BootstrapCancelledError("Readiness wait cancelled")
