"""
StageResult - result of stage execution.

Every stage reports success or failure as a value; the pipeline controller
short-circuits on the first terminal result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from presubmit.models.status import StageStatus

# Exit code used when a failure has no process status of its own.
GENERIC_FAILURE = 1


@dataclass(frozen=True)
class StageResult:
    """
    Result of a stage execution.

    Attributes:
        status: The stage status after it ran
        exit_code: Process-style status, 0 on success
        error: Human-readable failure message
        details: Stage-specific data (failing test path, leaked paths, ...)
    """

    status: StageStatus
    exit_code: int = 0
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, details: dict[str, Any] | None = None) -> StageResult:
        """
        Create a successful result.

        Args:
            details: Informational values about the run

        Returns:
            A StageResult with SUCCEEDED status
        """
        return cls(status=StageStatus.SUCCEEDED, details=details or {})

    @classmethod
    def terminal(
        cls,
        error: str,
        exit_code: int = GENERIC_FAILURE,
        details: dict[str, Any] | None = None,
    ) -> StageResult:
        """
        Create a terminal failure result.

        The stage and pipeline will fail.

        Args:
            error: Error message
            exit_code: Status to surface; a zero code is coerced to 1
            details: Additional failure data

        Returns:
            A StageResult with TERMINAL status
        """
        return cls(
            status=StageStatus.TERMINAL,
            exit_code=exit_code or GENERIC_FAILURE,
            error=error,
            details=details or {},
        )

    @property
    def succeeded(self) -> bool:
        return self.status.is_successful

    @property
    def failed(self) -> bool:
        return self.status.is_halt
