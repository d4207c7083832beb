"""Precheck delegation: hand off to the project's secondary checks."""

from __future__ import annotations

from presubmit.errors import DelegateFailure
from presubmit.stages.command import CommandStage


class PrecheckStage(CommandStage):
    """
    Run the precheck delegate (default "./precheck.sh") last.

    What the delegate checks is its own business; its exit status becomes
    the pipeline's final status.
    """

    name = "precheck"
    setting = "precheck_command"
    failure = DelegateFailure
