"""
CommandStage - a stage that runs one configured command.

The command is read from a configuration setting, ${NAME} placeholders are
expanded from the environment, and the command's status becomes the stage's
status unchanged. Output is not captured or interpreted.
"""

from __future__ import annotations

from typing import ClassVar

from presubmit.process import expand_placeholders
from presubmit.stages.interface import Stage, StageContext
from presubmit.stages.result import StageResult


class CommandStage(Stage):
    """
    Run the command named by a configuration setting.

    Subclasses set `setting` to the PresubmitConfig attribute holding the
    command, e.g. "build_command".

    Outputs:
        command: The command as executed
    """

    setting: ClassVar[str]

    def execute(self, context: StageContext) -> StageResult:
        command = expand_placeholders(context.config.command(self.setting), context.environ)
        result = context.runner.run(command)

        details = {"command": [list(segment) for segment in command]}
        if not result.ok:
            error = result.error or f"{self.name} failed with exit code {result.returncode}"
            return StageResult.terminal(error=error, exit_code=result.returncode, details=details)
        return StageResult.success(details=details)
