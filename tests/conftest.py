"""Shared pytest fixtures for presubmit tests.

Commands are built from sys.executable so the suite does not depend on any
particular tool being on PATH.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import sys
from collections.abc import Generator
from pathlib import Path

import pytest
import structlog

from presubmit.config import PresubmitConfig
from presubmit.logging import clear_context
from presubmit.process import CommandRunner
from presubmit.stages.interface import StageContext
from presubmit.stages.leak_guard import Identity
from presubmit.tracing import reset_tracing

SYNTHETIC_USER = "synthetic-user-7f3a"
SYNTHETIC_HOST = "synthetic-host-91bc"

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def python(code: str) -> list[str]:
    """An argv running a snippet of Python."""
    return [sys.executable, "-c", code]


def exits(code: int) -> list[str]:
    return python(f"import sys; sys.exit({code})")


def write_test_program(repo: Path, name: str, exit_code: int = 0) -> Path:
    """Write a system test program that logs its name to ran.log, then exits."""
    path = repo / "tests" / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        "import pathlib, sys\n"
        "log = pathlib.Path(__file__).resolve().parent.parent / 'ran.log'\n"
        "with open(log, 'a') as f:\n"
        f"    f.write({name!r} + '\\n')\n"
        f"sys.exit({exit_code})\n"
    )
    return path


def ran_tests(repo: Path) -> list[str]:
    log = repo / "ran.log"
    if not log.exists():
        return []
    return log.read_text().splitlines()


def make_config(repo: Path, **overrides: object) -> PresubmitConfig:
    """A config whose every command succeeds unless overridden."""
    settings: dict[str, object] = {
        "root": repo,
        "build_command": exits(0),
        "tests_dir": "tests",
        "test_pattern": "*.py",
        "test_runner": [sys.executable],
        "precheck_command": exits(0),
    }
    settings.update(overrides)
    return PresubmitConfig(**settings)  # type: ignore[arg-type]


def make_context(config: PresubmitConfig, environ: dict[str, str] | None = None) -> StageContext:
    return StageContext(
        config=config,
        runner=CommandRunner(config.root, timeout=config.timeout),
        environ=dict(os.environ) if environ is None else environ,
    )


def git_init(repo: Path) -> None:
    """Make repo a git work tree with every current file tracked."""
    subprocess.run(["git", "init", "-q"], cwd=repo, check=True)
    subprocess.run(["git", "add", "-A"], cwd=repo, check=True)


@pytest.fixture(autouse=True)
def reset_observability() -> Generator[None, None, None]:
    """Keep tracer and log context from leaking between tests."""
    yield
    reset_tracing()
    clear_context()
    structlog.reset_defaults()


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """An empty project directory with a tests/ folder."""
    root = tmp_path / "project"
    (root / "tests").mkdir(parents=True)
    return root.resolve()


@pytest.fixture
def identity() -> Identity:
    return Identity(user=SYNTHETIC_USER, host=SYNTHETIC_HOST)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop any PRESUBMIT_* overrides inherited from the real environment."""
    for key in list(os.environ):
        if key.startswith("PRESUBMIT_"):
            monkeypatch.delenv(key)
