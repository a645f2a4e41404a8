"""End-to-end bootstrap against fake `influxd` / `influx` executables.

The fakes are small Python scripts written into tmp_path, so the real
subprocess plumbing runs. Only the HTTP health probe is patched.
"""

import stat
import sys
import textwrap
from unittest.mock import patch

import pytest

from influx_bootstrap.services.sequencer import StepStatus, run_bootstrap

FAKE_INFLUXD = """\
#!{python}
print("influxd fake: listening on :8086", flush=True)
"""

FAKE_INFLUX = """\
#!{python}
import sys
from pathlib import Path

Path({calls!r}).open("a").write(" ".join(sys.argv[1:]) + "\\n")

if sys.argv[1] == "setup":
    print("User\\tOrganization\\tBucket")
    print("rctrl\\to\\tb")
elif sys.argv[1:3] == ["auth", "list"]:
    print("ID\\t\\t\\tDescription\\t\\tToken\\t\\tUser Name\\tUser ID\\t\\t\\tPermissions")
    print("0a1b2c3d4e5f6a7b\\trctrl2's Token\\tzzz999\\trctrl2\\t0b1c2d3e4f5a6b7c\\t[read:orgs]")
    print("0c1d2e3f4a5b6c7d\\trctrl's Token\\tabc123\\trctrl\\t0d1e2f3a4b5c6d7e\\t[read:orgs]")
else:
    sys.exit(2)
"""


def _write_executable(path, content):
    path.write_text(textwrap.dedent(content))
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def fake_tools(tmp_path):
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    calls = tmp_path / "influx-calls.txt"
    influxd = _write_executable(bin_dir / "influxd", FAKE_INFLUXD.format(python=sys.executable))
    influx = _write_executable(
        bin_dir / "influx", FAKE_INFLUX.format(python=sys.executable, calls=str(calls))
    )
    return influxd, influx, calls


@pytest.mark.skipif(sys.platform == "win32", reason="uses shebang executables")
def test_bootstrap_end_to_end(settings, fake_tools, credentials_text, installer):
    influxd, influx, calls = fake_tools
    settings = settings.model_copy(
        update={"daemon_command": str(influxd), "cli_command": str(influx)}
    )

    with patch("influx_bootstrap.services.daemon.check_health", return_value=True):
        report = run_bootstrap(settings)

    assert report.succeeded, report.failed_steps
    assert report.get("run_setup").status == StepStatus.OK

    # Only the token changed, and it is rctrl's (not rctrl2's)
    assert settings.credentials_path.read_text() == credentials_text.replace(
        'token = "PLACEHOLDER"', 'token = "abc123"'
    )

    invoked = calls.read_text().splitlines()
    assert invoked[0].startswith("setup -u rctrl -p pw -o o -b b -r 30d -f")
    assert invoked[1].startswith("auth list")

    # The run-once installer is gone and the run is marked done
    assert not installer.exists()
    assert settings.marker_path.exists()

    # A second run is a no-op
    again = run_bootstrap(settings)
    assert all(r.status == StepStatus.SKIPPED for r in again.results)
