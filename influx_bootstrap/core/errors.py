"""Error taxonomy for the bootstrap sequence.

One exception per failure category. The sequencer records these per step
instead of letting them abort the run.
"""

import httpx


class BootstrapError(Exception):
    """Base class for failures of a single bootstrap step."""


class DaemonStartError(BootstrapError):
    """The daemon process could not be launched or exited early."""


class ReadinessTimeoutError(BootstrapError):
    """The daemon did not report healthy within the readiness budget."""


class BootstrapCancelledError(BootstrapError):
    """The readiness wait was cancelled before the daemon became ready."""


class CredentialsFileError(BootstrapError):
    """The credentials file is missing or unreadable."""


class MissingFieldsError(BootstrapError):
    """One or more required credential fields are absent."""

    def __init__(self, fields: list[str]):
        self.fields = list(fields)
        super().__init__(f"Missing credential fields: {', '.join(self.fields)}")


class SetupCommandError(BootstrapError):
    """`influx setup` failed."""


class AlreadyInitializedError(SetupCommandError):
    """The daemon has already been set up."""


class TokenNotFoundError(BootstrapError):
    """No authorization row matched the configured user."""


class RewriteNoMatchError(BootstrapError):
    """The token assignment could not be located, so the file was left unchanged."""


def sanitize_error(e: Exception) -> str:
    """Return a message safe to print in a report.

    Bootstrap errors are constructed without secrets. httpx exceptions can
    carry full URLs and headers, so they are reduced to generic messages.
    """
    if isinstance(e, BootstrapError):
        return str(e) or type(e).__name__
    if isinstance(e, httpx.TimeoutException):
        return "Daemon health check timeout"
    if isinstance(e, httpx.ConnectError):
        return "Daemon health check connection failed"
    if isinstance(e, httpx.HTTPError):
        return "Daemon health check error"
    if isinstance(e, OSError):
        return f"{type(e).__name__}: {e.strerror or 'I/O error'}"
    return "Bootstrap step failed"
