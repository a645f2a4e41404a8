"""Bootstrap sequencer: runs the one-shot container setup in order.

1. Start the daemon detached, output to a log file
2. Wait for its health check to pass
3. Load user/password/org/bucket/retention from the credentials file
4. Run `influx setup` with those values
5. Find the configured user's token in `influx auth list`
6. Rewrite the credentials file's token field
7. Write shell exports (when an env file is configured)
8. Mark the bootstrap as done and remove the installer script

Each step is independently failable: a failure is recorded and the next
step still runs, unless it has nothing to work with or fail_fast is set.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from influx_bootstrap.core.config import Settings
from influx_bootstrap.core.errors import (
    AlreadyInitializedError,
    BootstrapCancelledError,
    BootstrapError,
    MissingFieldsError,
    RewriteNoMatchError,
    sanitize_error,
)
from influx_bootstrap.services import credentials, daemon, environment, influx_cli
from influx_bootstrap.services.credentials import CredentialsRecord
from influx_bootstrap.services.daemon import DaemonHandle

logger = logging.getLogger(__name__)

STEPS = (
    "start_daemon",
    "wait_for_daemon",
    "load_credentials",
    "run_setup",
    "discover_token",
    "persist_token",
    "export_environment",
    "finalize",
)


class StepStatus(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class StepResult:
    """Outcome of a single bootstrap step."""

    name: str
    status: StepStatus
    detail: str = ""
    error: str | None = None


@dataclass
class BootstrapReport:
    """Aggregate result of a bootstrap run."""

    results: list[StepResult] = field(default_factory=list)

    @property
    def failed_steps(self) -> list[StepResult]:
        return [r for r in self.results if r.status == StepStatus.FAILED]

    @property
    def succeeded(self) -> bool:
        return not self.failed_steps

    def get(self, name: str) -> StepResult | None:
        for result in self.results:
            if result.name == name:
                return result
        return None


class BootstrapSequencer:
    """Runs the bootstrap steps against one settings object."""

    def __init__(
        self,
        settings: Settings,
        *,
        force: bool = False,
        skip_daemon: bool = False,
        fail_fast: bool | None = None,
        cancel_event: threading.Event | None = None,
    ):
        self.settings = settings
        self.force = force
        self.skip_daemon = skip_daemon
        self.fail_fast = settings.fail_fast if fail_fast is None else fail_fast
        self.cancel_event = cancel_event or threading.Event()

        self.daemon: DaemonHandle | None = None
        self.record: CredentialsRecord | None = None
        self.token: str | None = None
        self.report = BootstrapReport()

    # -- run loop ----------------------------------------------------------

    def run(self) -> BootstrapReport:
        marker = self.settings.marker_path
        if marker.exists() and not self.force:
            logger.info(
                "Bootstrap already completed (%s exists), skipping. Use --force to rerun.", marker
            )
            for name in STEPS:
                self.report.results.append(
                    StepResult(name, StepStatus.SKIPPED, f"already bootstrapped ({marker})")
                )
            return self.report

        halted = False
        for number, name in enumerate(STEPS, start=1):
            if halted:
                self.report.results.append(
                    StepResult(name, StepStatus.SKIPPED, "skipped after earlier failure")
                )
                continue

            logger.info("Step %d/%d: %s", number, len(STEPS), name)
            result = self._run_step(name)
            self.report.results.append(result)

            if result.status == StepStatus.FAILED:
                logger.error("Step %s failed: %s", name, result.error)
                halted = self.fail_fast
            elif result.status == StepStatus.SKIPPED:
                logger.info("Step %s skipped: %s", name, result.detail)

        if self.report.succeeded:
            logger.info("Bootstrap complete")
        else:
            failed = ", ".join(r.name for r in self.report.failed_steps)
            logger.warning("Bootstrap finished with failed step(s): %s", failed)
        return self.report

    def _run_step(self, name: str) -> StepResult:
        step = getattr(self, f"_step_{name}")
        try:
            return step()
        except BootstrapCancelledError:
            raise
        except (BootstrapError, OSError) as e:
            return StepResult(name, StepStatus.FAILED, error=sanitize_error(e))

    # -- steps -------------------------------------------------------------

    def _step_start_daemon(self) -> StepResult:
        if self.skip_daemon:
            return StepResult("start_daemon", StepStatus.SKIPPED, "daemon launch disabled")
        self.daemon = daemon.start_daemon(
            self.settings.daemon_command, Path(self.settings.daemon_log_file)
        )
        return StepResult("start_daemon", StepStatus.OK, f"pid {self.daemon.pid}")

    def _step_wait_for_daemon(self) -> StepResult:
        waited = daemon.wait_until_ready(
            self.settings.influx_host,
            timeout=self.settings.readiness_timeout_seconds,
            interval=self.settings.readiness_poll_interval_seconds,
            cancel_event=self.cancel_event,
            daemon=self.daemon,
            request_timeout=self.settings.health_request_timeout_seconds,
        )
        return StepResult("wait_for_daemon", StepStatus.OK, f"ready after {waited:.1f}s")

    def _step_load_credentials(self) -> StepResult:
        self.record = credentials.load_credentials(self.settings.credentials_path)
        if self.record.missing_fields:
            raise MissingFieldsError(self.record.missing_fields)
        return StepResult("load_credentials", StepStatus.OK, f"user '{self.record.user}'")

    def _step_run_setup(self) -> StepResult:
        if self.record is None:
            return StepResult("run_setup", StepStatus.SKIPPED, "no credentials loaded")
        if self.record.missing_fields:
            missing = ", ".join(self.record.missing_fields)
            return StepResult("run_setup", StepStatus.SKIPPED, f"missing fields: {missing}")
        try:
            influx_cli.run_setup(
                self.record,
                cli=self.settings.cli_command,
                host=self.settings.influx_host,
                timeout=self.settings.command_timeout_seconds,
            )
        except AlreadyInitializedError:
            return StepResult("run_setup", StepStatus.SKIPPED, "daemon already set up")
        return StepResult(
            "run_setup", StepStatus.OK, f"org '{self.record.org}', bucket '{self.record.bucket}'"
        )

    def _step_discover_token(self) -> StepResult:
        if self.record is None or not self.record.user:
            return StepResult("discover_token", StepStatus.SKIPPED, "no user configured")
        listing = influx_cli.list_authorizations(
            cli=self.settings.cli_command,
            host=self.settings.influx_host,
            timeout=self.settings.command_timeout_seconds,
        )
        self.token = influx_cli.find_user_token(listing, self.record.user)
        return StepResult("discover_token", StepStatus.OK, f"token for '{self.record.user}'")

    def _step_persist_token(self) -> StepResult:
        if self.token is None or self.record is None:
            return StepResult("persist_token", StepStatus.SKIPPED, "no token discovered")
        if self.record.token == self.token:
            return StepResult("persist_token", StepStatus.OK, "token already up to date")

        path = self.settings.credentials_path
        if not credentials.rewrite_token(path, self.token, expected_current=self.record.token):
            raise RewriteNoMatchError(
                f"Token assignment not found verbatim in {path}, file unchanged"
            )
        self.record.token = self.token
        return StepResult("persist_token", StepStatus.OK, f"updated {path}")

    def _step_export_environment(self) -> StepResult:
        env_path = self.settings.env_path
        if env_path is None:
            return StepResult("export_environment", StepStatus.SKIPPED, "no env file configured")
        if self.record is None:
            return StepResult("export_environment", StepStatus.SKIPPED, "no credentials loaded")
        values = environment.environment_values(
            self.settings.credentials_path, self.record, self.token
        )
        environment.write_env_file(env_path, values)
        return StepResult("export_environment", StepStatus.OK, f"wrote {env_path}")

    def _step_finalize(self) -> StepResult:
        notes = []
        if self.report.succeeded:
            marker = self.settings.marker_path
            marker.parent.mkdir(parents=True, exist_ok=True)
            marker.write_text(datetime.now(timezone.utc).isoformat() + "\n", encoding="utf-8")
            notes.append(f"marked done ({marker})")
        else:
            notes.append("not marked done, earlier steps failed")

        installer = self.settings.installer_file
        if installer.exists():
            installer.unlink(missing_ok=True)
            logger.info("Removed installer %s", installer)
            notes.append(f"removed {installer}")
        return StepResult("finalize", StepStatus.OK, "; ".join(notes))


def run_bootstrap(
    settings: Settings,
    *,
    force: bool = False,
    skip_daemon: bool = False,
    fail_fast: bool | None = None,
    cancel_event: threading.Event | None = None,
) -> BootstrapReport:
    sequencer = BootstrapSequencer(
        settings,
        force=force,
        skip_daemon=skip_daemon,
        fail_fast=fail_fast,
        cancel_event=cancel_event,
    )
    return sequencer.run()
