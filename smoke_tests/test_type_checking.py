"""Smoke tests for type checking validation.

mypy runs against the installed package sources using the settings in
pyproject.toml.
"""

import subprocess
import sys
from pathlib import Path
from typing import List

import pytest


pytestmark = pytest.mark.smoke

MAX_REPORTED_ERRORS = 20


def _mypy(*args: str, cwd: Path) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "mypy", *args],
        capture_output=True,
        text=True,
        cwd=cwd,
    )


@pytest.fixture(scope="module")
def mypy_version(project_root: Path) -> str:
    """Fail early with an install hint when mypy is missing."""
    result = _mypy("--version", cwd=project_root)
    if result.returncode != 0:
        pytest.fail(
            "mypy is not installed or not accessible.\n"
            f"Error: {result.stderr}\n"
            "Install with: pip install -e '.[test]'"
        )
    return result.stdout.strip()


@pytest.fixture(scope="module")
def project_root() -> Path:
    return Path(__file__).parent.parent


def _summarize(stdout: str, stderr: str) -> str:
    lines: List[str] = []
    errors = [line for line in stdout.strip().splitlines() if line]
    if errors:
        lines.append("Type errors found:")
        lines.extend(f"  {line}" for line in errors[:MAX_REPORTED_ERRORS])
        if len(errors) > MAX_REPORTED_ERRORS:
            lines.append(f"  ... and {len(errors) - MAX_REPORTED_ERRORS} more errors")
    if stderr.strip():
        lines.append(f"mypy stderr: {stderr.strip()}")
    return "\n".join(lines)


def test_mypy_reports_version(mypy_version: str) -> None:
    assert "mypy" in mypy_version.lower(), f"Unexpected mypy version output: {mypy_version}"


def test_amqp_connection_type_checking_passes(
    mypy_version: str, project_root: Path, package_dir: Path
) -> None:
    """Every module of amqp_connection, co-located tests included, type checks cleanly."""
    result = _mypy(str(package_dir), "--no-error-summary", cwd=project_root)

    if result.returncode != 0:
        pytest.fail(
            f"Type checking failed in amqp_connection:\n{_summarize(result.stdout, result.stderr)}\n\n"
            f"Run 'mypy {package_dir}' for full output."
        )
