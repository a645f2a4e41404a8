"""Credentials record parser and serializer.

The credentials file is a small TOML-like document with one assignment per
line in the form ``name = "value"``. Parsing keeps the original lines so a
rewrite touches only the line of the field being changed; comments, ordering
and line endings survive byte for byte.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from influx_bootstrap.core.errors import CredentialsFileError

logger = logging.getLogger(__name__)

INPUT_FIELDS = ("user", "password", "org", "bucket", "retention")
TOKEN_FIELD = "token"

# Exactly one space either side of "=", value in double quotes. Anything else
# (e.g. `token="x"`) is not an assignment this module will read or rewrite.
_ASSIGNMENT_RE = re.compile(
    r'^(?P<indent>[ \t]*)(?P<key>[A-Za-z_][A-Za-z0-9_-]*) = "(?P<value>[^"\r\n]*)"'
)


@dataclass
class CredentialsRecord:
    """Structured view of the credentials file."""

    user: str = ""
    password: str = ""
    org: str = ""
    bucket: str = ""
    retention: str = ""
    token: str = ""
    missing_fields: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields

    def __repr__(self) -> str:
        # Never show the password or token in logs or tracebacks
        return (
            f"CredentialsRecord(user={self.user!r}, org={self.org!r}, bucket={self.bucket!r}, "
            f"retention={self.retention!r}, missing_fields={self.missing_fields!r})"
        )


class CredentialsDocument:
    """The parsed lines of a credentials file."""

    def __init__(self, text: str):
        self.lines = text.splitlines(keepends=True)

    def _find(self, name: str) -> tuple[int, re.Match] | None:
        # First occurrence wins when a field is duplicated
        for index, line in enumerate(self.lines):
            match = _ASSIGNMENT_RE.match(line)
            if match and match.group("key") == name:
                return index, match
        return None

    def get(self, name: str) -> str | None:
        found = self._find(name)
        if found is None:
            return None
        return found[1].group("value")

    def set(self, name: str, value: str) -> bool:
        """Rewrite the value of an existing field. Returns False if it is absent."""
        found = self._find(name)
        if found is None:
            return False
        index, match = found
        line = self.lines[index]
        start, end = match.span("value")
        self.lines[index] = line[:start] + value + line[end:]
        return True

    def to_record(self) -> CredentialsRecord:
        values = {}
        missing = []
        for name in INPUT_FIELDS:
            value = self.get(name)
            if value is None:
                missing.append(name)
                value = ""
            values[name] = value
        token = self.get(TOKEN_FIELD) or ""
        return CredentialsRecord(**values, token=token, missing_fields=missing)

    def dumps(self) -> str:
        return "".join(self.lines)


def parse_credentials(text: str) -> CredentialsDocument:
    return CredentialsDocument(text)


def extract_field(text: str, name: str) -> str:
    """Return the quoted value assigned to ``name``, or an empty string."""
    return parse_credentials(text).get(name) or ""


def _read_text(path: Path) -> str:
    try:
        # newline="" keeps \r\n intact for a faithful rewrite
        with open(path, encoding="utf-8", newline="") as f:
            return f.read()
    except FileNotFoundError as e:
        raise CredentialsFileError(f"Credentials file not found: {path}") from e
    except UnicodeDecodeError as e:
        raise CredentialsFileError(f"Credentials file {path} is not valid UTF-8") from e
    except OSError as e:
        raise CredentialsFileError(f"Cannot read credentials file {path}: {e.strerror}") from e


def _write_atomic(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` via a sibling temp file, keeping its mode."""
    path = Path(path)
    mode = path.stat().st_mode & 0o7777
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def load_credentials(path: Path) -> CredentialsRecord:
    """Read the credentials file and extract its fields."""
    record = parse_credentials(_read_text(path)).to_record()
    if record.missing_fields:
        logger.warning(
            "Credentials file %s is missing field(s): %s",
            path,
            ", ".join(record.missing_fields),
        )
    else:
        logger.info(
            "Loaded credentials for user '%s' (org=%s, bucket=%s)",
            record.user,
            record.org,
            record.bucket,
        )
    return record


def rewrite_token(path: Path, new_token: str, expected_current: str | None = None) -> bool:
    """Replace the token value in place.

    No-op (returns False) when the token assignment is not present in
    canonical form, when ``expected_current`` no longer matches the file,
    or when the value is already ``new_token``.
    """
    document = parse_credentials(_read_text(path))
    current = document.get(TOKEN_FIELD)

    if current is None:
        logger.warning(
            "No `%s = \"...\"` assignment in %s, leaving file unchanged", TOKEN_FIELD, path
        )
        return False
    if expected_current is not None and current != expected_current:
        logger.warning("Token in %s changed since it was read, leaving file unchanged", path)
        return False
    if current == new_token:
        logger.info("Token in %s is already up to date", path)
        return False

    document.set(TOKEN_FIELD, new_token)
    _write_atomic(path, document.dumps())
    logger.info("Rewrote token in %s", path)
    return True
