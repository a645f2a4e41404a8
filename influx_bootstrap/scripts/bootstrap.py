"""Run-once InfluxDB bootstrap for the development container.

Usage:
    influx-bootstrap            # same as `influx-bootstrap run`
    influx-bootstrap run --env-file ~/.influx.env
    influx-bootstrap env        # print exports for the credentials file
"""

import argparse
import signal
import sys
import threading

from influx_bootstrap.core.config import get_settings
from influx_bootstrap.core.errors import BootstrapCancelledError, BootstrapError
from influx_bootstrap.core.logging import configure_logging
from influx_bootstrap.services.credentials import load_credentials
from influx_bootstrap.services.environment import environment_values, render_env_exports
from influx_bootstrap.services.sequencer import StepStatus, run_bootstrap

EXIT_INTERRUPTED = 130

_STATUS_LABELS = {
    StepStatus.OK: "ok",
    StepStatus.SKIPPED: "skip",
    StepStatus.FAILED: "FAIL",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="influx-bootstrap",
        description="Start influxd, run first-time setup and store the issued token",
    )
    parser.add_argument("--credentials-file", help="Path to credentials.toml")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command")

    run = subparsers.add_parser("run", help="Run the bootstrap sequence (default)")
    run.add_argument("--env-file", help="Write INFLUX_* exports to this file")
    run.add_argument("--force", action="store_true", help="Run even if already bootstrapped")
    run.add_argument("--fail-fast", action="store_true", help="Stop at the first failed step")
    run.add_argument(
        "--skip-daemon", action="store_true", help="Do not launch influxd (already running)"
    )
    run.add_argument("--timeout", type=float, help="Readiness timeout in seconds")

    subparsers.add_parser("env", help="Print shell exports for the credentials file")
    return parser


def _settings_from_args(args: argparse.Namespace):
    settings = get_settings()
    overrides = {}
    if args.credentials_file:
        overrides["credentials_file"] = args.credentials_file
    if getattr(args, "env_file", None):
        overrides["env_file"] = args.env_file
    if getattr(args, "timeout", None) is not None:
        overrides["readiness_timeout_seconds"] = args.timeout
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings


def cmd_run(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    cancel_event = threading.Event()

    def cancel(signum, frame):
        print("Cancelling bootstrap...", file=sys.stderr)
        cancel_event.set()

    previous_handler = signal.signal(signal.SIGTERM, cancel)

    try:
        report = run_bootstrap(
            settings,
            force=getattr(args, "force", False),
            skip_daemon=getattr(args, "skip_daemon", False),
            fail_fast=True if getattr(args, "fail_fast", False) else None,
            cancel_event=cancel_event,
        )
    except (KeyboardInterrupt, BootstrapCancelledError):
        print("Bootstrap cancelled.", file=sys.stderr)
        return EXIT_INTERRUPTED
    finally:
        signal.signal(signal.SIGTERM, previous_handler)

    print()
    print("=" * 60)
    print("  InfluxDB Bootstrap")
    print("=" * 60)
    for result in report.results:
        line = f"  [{_STATUS_LABELS[result.status]:>4}] {result.name:<20} {result.detail}"
        if result.error:
            line += f" {result.error}"
        print(line.rstrip())
    print("=" * 60)
    print()
    return 0 if report.succeeded else 1


def cmd_env(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    try:
        record = load_credentials(settings.credentials_path)
    except BootstrapError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    sys.stdout.write(render_env_exports(environment_values(settings.credentials_path, record)))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if getattr(args, "timeout", None) is not None and args.timeout <= 0:
        parser.error("--timeout must be greater than zero")

    # stdout carries the exports for `env`, so they can be eval'd
    stream = sys.stderr if args.command == "env" else None
    # Before get_settings() so its validation warnings share the format
    configure_logging("DEBUG" if args.verbose else "INFO", stream=stream)
    settings = get_settings()
    if not args.verbose and settings.log_level.upper() != "INFO":
        configure_logging(settings.log_level, stream=stream)

    if args.command == "env":
        return cmd_env(args)
    return cmd_run(args)


if __name__ == "__main__":
    sys.exit(main())
