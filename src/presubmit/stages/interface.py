"""
Stage interface definitions.

This module defines the Stage interface every pipeline stage implements and
the StageContext handed to it.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar

from presubmit.errors import StageFailure
from presubmit.stages.result import StageResult

if TYPE_CHECKING:
    from presubmit.config import PresubmitConfig
    from presubmit.process import CommandRunner


@dataclass
class StageContext:
    """
    What a stage may touch while it runs.

    Attributes:
        config: Effective configuration for the run
        runner: Launches (and traces) every external command
        environ: Environment used to resolve ${NAME} placeholders
    """

    config: PresubmitConfig
    runner: CommandRunner
    environ: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))


class Stage(ABC):
    """
    Base interface for all stages.

    Stages are the ordered units of a pipeline run. Each stage:
    - Receives the run's StageContext
    - Performs its work, usually by launching external commands
    - Returns a StageResult; expected failures are results, not exceptions

    Example:
        class LintStage(Stage):
            name = "lint"
            failure = DelegateFailure

            def execute(self, context: StageContext) -> StageResult:
                result = context.runner.run(["ruff", "check", "."])
                if not result.ok:
                    return StageResult.terminal("lint failed", result.returncode)
                return StageResult.success()
    """

    name: ClassVar[str] = "stage"

    # Exception class PipelineRun.raise_for_status() raises for this stage.
    failure: ClassVar[type[StageFailure]] = StageFailure

    @abstractmethod
    def execute(self, context: StageContext) -> StageResult:
        """
        Execute the stage.

        Args:
            context: The run's stage context

        Returns:
            StageResult indicating success or terminal failure

        Raises:
            Exception: Any exception is caught by the pipeline controller and
                recorded as a terminal result for this stage
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
