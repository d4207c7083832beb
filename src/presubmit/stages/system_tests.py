"""
System test stage: run every system test program against built artifacts.

Test programs are discovered fresh on each run from a fixed directory and
glob pattern, sorted lexically, and executed one at a time with no
arguments. The first program to exit non-zero fails the stage; programs
after it never start.
"""

from __future__ import annotations

import os
from pathlib import Path

from presubmit.errors import TestFailure
from presubmit.logging import get_logger
from presubmit.stages.interface import Stage, StageContext
from presubmit.stages.result import StageResult

logger = get_logger(__name__)


def discover_tests(directory: Path, pattern: str) -> list[Path]:
    """Find system test programs, sorted for a reproducible order.

    A missing directory yields no tests rather than an error.
    """
    if not directory.is_dir():
        return []
    found = [path for path in directory.glob(pattern) if path.is_file()]
    return sorted(found, key=lambda path: path.relative_to(directory).as_posix())


def _invocation_path(path: Path, root: Path) -> str:
    # A relative path needs a directory component, otherwise exec searches PATH.
    try:
        return os.path.join(".", path.relative_to(root))
    except ValueError:
        return str(path)


class SystemTestStage(Stage):
    """
    Execute each discovered test program as an independent process.

    Builds must already have succeeded: the programs are expected to exercise
    only the built artifacts.

    Outputs:
        tests: Invocation paths of the programs that ran, in order
    """

    __test__ = False  # keep pytest from collecting this class

    name = "system-tests"
    failure = TestFailure

    def execute(self, context: StageContext) -> StageResult:
        config = context.config
        directory = config.tests_path
        tests = discover_tests(directory, config.require("test_pattern"))

        if not tests:
            # A mistyped tests_dir also lands here.
            logger.warning("tests.none_found", directory=str(directory), pattern=config.test_pattern)
            return StageResult.success(details={"tests": []})

        prefix = config.runner_prefix
        ran: list[str] = []
        for path in tests:
            test = _invocation_path(path, config.root)
            result = context.runner.run([*prefix, test])
            ran.append(test)
            if not result.ok:
                error = result.error or f"{test} failed with exit code {result.returncode}"
                return StageResult.terminal(
                    error=error,
                    exit_code=result.returncode,
                    details={"test_path": test, "tests": ran},
                )

        logger.info("tests.passed", count=len(ran))
        return StageResult.success(details={"tests": ran})
