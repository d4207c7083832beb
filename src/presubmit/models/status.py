"""
StageStatus enum.

This enum represents the states a stage moves through during a run.
Each status has two boolean properties:
- complete: Whether the stage has finished its work (successfully or not)
- halt: Whether later stages must not run
"""

from enum import Enum


class StageStatus(Enum):
    """
    Stage status enum.

    Each value is a tuple of (name, complete, halt).
    """

    # The stage has yet to start, or never started because an earlier one failed
    NOT_STARTED = ("NOT_STARTED", False, False)

    # The stage is executing
    RUNNING = ("RUNNING", False, False)

    # The stage finished with status 0 and the pipeline may proceed
    SUCCEEDED = ("SUCCEEDED", True, False)

    # The stage failed - the pipeline will not progress further
    TERMINAL = ("TERMINAL", True, True)

    def __init__(self, name: str, complete: bool, halt: bool) -> None:
        self._name = name
        self._complete = complete
        self._halt = halt

    @property
    def is_complete(self) -> bool:
        """
        Indicates that the stage has finished its work.

        Returns True for: SUCCEEDED, TERMINAL
        """
        return self._complete

    @property
    def is_halt(self) -> bool:
        """
        Indicates an abnormal completion - nothing downstream should run.

        Returns True for: TERMINAL
        """
        return self._halt

    @property
    def is_successful(self) -> bool:
        return self is StageStatus.SUCCEEDED

    def __str__(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return f"StageStatus.{self.name}"
