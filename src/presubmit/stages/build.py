"""Build stage: invoke the project's build system once."""

from __future__ import annotations

from presubmit.errors import BuildFailure
from presubmit.stages.command import CommandStage


class BuildStage(CommandStage):
    """
    Produce the artifacts the system tests run against.

    Runs `build_command` (default "cargo build") with no extra arguments.
    There is no retry and no interpretation of build output; a non-zero
    status is passed through as the pipeline's status.
    """

    name = "build"
    setting = "build_command"
    failure = BuildFailure
