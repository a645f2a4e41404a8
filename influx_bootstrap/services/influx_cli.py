"""Wrappers around the `influx` command-line client."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass

from influx_bootstrap.core.errors import (
    AlreadyInitializedError,
    SetupCommandError,
    TokenNotFoundError,
)
from influx_bootstrap.services.credentials import CredentialsRecord

logger = logging.getLogger(__name__)

REDACTED = "********"

# `influx setup` stderr when the instance was provisioned by an earlier run
_ALREADY_SET_UP_MARKERS = (
    "has already been set up",
    "already been setup",
    "onboarding has already",
)


@dataclass(frozen=True)
class AuthRow:
    """One row of `influx auth list` output."""

    token: str
    user_name: str
    fields: tuple[str, ...]


def _redact(cmd: list[str], secrets: tuple[str, ...]) -> str:
    return " ".join(REDACTED if part in secrets and part else part for part in cmd)


def build_setup_command(cli: str, record: CredentialsRecord, host: str | None = None) -> list[str]:
    cmd = [
        cli, "setup",
        "-u", record.user,
        "-p", record.password,
        "-o", record.org,
        "-b", record.bucket,
        "-r", record.retention,
        "-f",
    ]
    if host:
        cmd.extend(["--host", host])
    return cmd


def _run(
    cmd: list[str], timeout: float, secrets: tuple[str, ...] = ()
) -> subprocess.CompletedProcess:
    logger.debug("Running: %s", _redact(cmd, secrets))
    return subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)


def run_setup(
    record: CredentialsRecord,
    cli: str = "influx",
    host: str | None = None,
    timeout: float = 60.0,
) -> str:
    """Run the one-time `influx setup` non-interactively. Returns its stdout."""
    cmd = build_setup_command(cli, record, host)
    secrets = (record.password,)
    logger.info("Running influx setup for user '%s' (org=%s, bucket=%s, retention=%s)",
                record.user, record.org, record.bucket, record.retention)
    try:
        result = _run(cmd, timeout, secrets)
    except FileNotFoundError as e:
        raise SetupCommandError(f"{cli} executable not found") from e
    except subprocess.TimeoutExpired as e:
        raise SetupCommandError(f"influx setup timed out after {timeout}s") from e

    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        if record.password:
            stderr = stderr.replace(record.password, REDACTED)
        if any(marker in stderr.lower() for marker in _ALREADY_SET_UP_MARKERS):
            raise AlreadyInitializedError("Daemon has already been set up")
        raise SetupCommandError(
            f"influx setup exited with code {result.returncode}: {stderr or 'no output'}"
        )

    logger.info("influx setup completed")
    return result.stdout


def list_authorizations(cli: str = "influx", host: str | None = None, timeout: float = 60.0) -> str:
    """Return the tabular output of `influx auth list`."""
    cmd = [cli, "auth", "list"]
    if host:
        cmd.extend(["--host", host])
    try:
        result = _run(cmd, timeout)
    except FileNotFoundError as e:
        raise TokenNotFoundError(f"{cli} executable not found") from e
    except subprocess.TimeoutExpired as e:
        raise TokenNotFoundError(f"influx auth list timed out after {timeout}s") from e

    if result.returncode != 0:
        raise TokenNotFoundError(
            f"influx auth list exited with code {result.returncode}: "
            f"{(result.stderr or '').strip() or 'no output'}"
        )
    return result.stdout


def _is_header(fields: list[str]) -> bool:
    return bool(fields) and fields[0] == "ID"


def parse_auth_table(listing: str, user: str) -> list[AuthRow]:
    """Return rows whose user name column equals ``user`` exactly.

    The token column sits immediately before the user name column. Fields are
    whitespace separated, so ``rctrl`` never matches ``rctrl2``. Descriptions
    may contain the user name as a word, so the rightmost exact match in a row
    is taken as the user name column.
    """
    rows = []
    for line in listing.splitlines():
        fields = line.split()
        if not fields or _is_header(fields):
            continue
        index = None
        for i in range(len(fields) - 1, 0, -1):
            if fields[i] == user:
                index = i
                break
        if index is None:
            continue
        rows.append(AuthRow(token=fields[index - 1], user_name=user, fields=tuple(fields)))
    return rows


def find_user_token(listing: str, user: str) -> str:
    """Return the token issued to ``user`` in an `influx auth list` listing."""
    if not user:
        raise TokenNotFoundError("No user configured to look up a token for")

    rows = parse_auth_table(listing, user)
    if not rows:
        raise TokenNotFoundError(f"No authorization found for user '{user}'")
    if len(rows) > 1:
        logger.warning("Found %d authorizations for user '%s', using the first", len(rows), user)

    token = rows[0].token
    logger.info("Discovered token for user '%s' (%s...)", user, token[:4])
    return token
