"""
PipelineRun - the record of one gate execution.

A run holds the ordered stage records for one entrypoint and the trace of
every external command launched while it executed.
"""

from __future__ import annotations

import shlex
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from presubmit.models.status import StageStatus

if TYPE_CHECKING:
    from presubmit.stages.interface import Stage
    from presubmit.stages.result import StageResult


# A command is one or more argv segments joined by pipes.
Command = tuple[tuple[str, ...], ...]


class Entrypoint(Enum):
    """Named configuration selecting which stages run."""

    # Developer machine: includes the privacy leak guard
    LOCAL = "local"

    # CI runner: no leak guard
    AUTOMATED = "automated"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class CommandTrace:
    """One external command as it was executed.

    Attributes:
        stage: Name of the stage that launched the command
        command: Pipe segments, each an argv tuple
        cwd: Working directory the command ran in
        exit_code: Resulting status (pipefail semantics for pipes)
    """

    stage: str | None
    command: Command
    cwd: str
    exit_code: int

    @property
    def display(self) -> str:
        return format_command(self.command)


def format_command(command: Command) -> str:
    """Render pipe segments the way a shell trace would print them."""
    return " | ".join(shlex.join(segment) for segment in command)


@dataclass
class StageRecord:
    """A stage's slot in a run."""

    stage: Stage
    status: StageStatus = StageStatus.NOT_STARTED
    result: StageResult | None = None

    @property
    def name(self) -> str:
        return self.stage.name


@dataclass
class PipelineRun:
    """One execution of the ordered stage sequence for an entrypoint.

    Stages execute strictly in declared order; once a record is TERMINAL
    every later record stays NOT_STARTED.
    """

    entrypoint: Entrypoint
    records: list[StageRecord] = field(default_factory=list)
    trace: list[CommandTrace] = field(default_factory=list)
    start_time: float | None = None
    end_time: float | None = None

    def start(self) -> None:
        self.start_time = time.time()

    def finish(self) -> None:
        self.end_time = time.time()

    @property
    def duration(self) -> float | None:
        if self.start_time is None or self.end_time is None:
            return None
        return self.end_time - self.start_time

    @property
    def stage_names(self) -> list[str]:
        return [record.name for record in self.records]

    @property
    def executed(self) -> list[StageRecord]:
        """Records of stages that actually started."""
        return [r for r in self.records if r.status is not StageStatus.NOT_STARTED]

    @property
    def failed_stage(self) -> StageRecord | None:
        for record in self.records:
            if record.status.is_halt:
                return record
        return None

    @property
    def succeeded(self) -> bool:
        return bool(self.records) and all(r.status.is_successful for r in self.records)

    @property
    def status(self) -> StageStatus:
        if self.failed_stage is not None:
            return StageStatus.TERMINAL
        if self.succeeded:
            return StageStatus.SUCCEEDED
        if any(r.status is StageStatus.RUNNING for r in self.records):
            return StageStatus.RUNNING
        return StageStatus.NOT_STARTED

    @property
    def exit_code(self) -> int:
        """0 when every stage succeeded, else the first failing stage's status."""
        failed = self.failed_stage
        if failed is not None and failed.result is not None:
            return failed.result.exit_code
        return 0

    def raise_for_status(self) -> None:
        """Raise the failing stage's StageFailure subclass, if any stage failed."""
        failed = self.failed_stage
        if failed is None or failed.result is None:
            return
        raise failed.stage.failure(
            failed.result.error or f"{failed.name} failed",
            stage_name=failed.name,
            exit_code=failed.result.exit_code,
            details=failed.result.details,
        )
