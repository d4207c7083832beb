"""Presubmit error hierarchy.

Two-tier exception hierarchy:

1. PresubmitBaseException - Base for all errors
2. PresubmitError - Standard errors raised by the gate

Error Classification:
- ConfigurationError: Invalid configuration
- UnboundReferenceError: A required value was referenced before being set
- VersionControlError: Listing tracked files failed
- StageFailure: A pipeline stage finished with a non-zero status
    - BuildFailure, TestFailure, LeakDetected, DelegateFailure

Stages report expected failures as StageResult values; the matching
StageFailure subclass is only raised on demand via
PipelineRun.raise_for_status().

Usage:
    from presubmit.errors import StageFailure

    run = pipeline.run()
    try:
        run.raise_for_status()
    except StageFailure as e:
        sys.exit(e.exit_code)
"""

from __future__ import annotations

from typing import Any


class PresubmitBaseException(Exception):  # noqa: N818 - intentional base exception name
    """Base exception for all presubmit errors.

    Attributes:
        code: Numeric error code for programmatic handling
        cause: Optional original exception that caused this error
    """

    code: int = 0

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message
            code: Optional numeric error code for programmatic handling
            cause: Optional original exception that caused this error
        """
        super().__init__(message)
        if code is not None:
            self.code = code
        self.cause = cause

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.code:
            parts.append(f"(code={self.code})")
        if self.cause:
            parts.append(f"caused by: {self.cause}")
        return " ".join(parts)


class PresubmitError(PresubmitBaseException):
    """Standard presubmit error.

    All normal gate errors inherit from this.
    """

    code: int = 100


class ConfigurationError(PresubmitError):
    """Invalid configuration.

    Raised while loading or validating configuration:
    - Unreadable or malformed config file
    - Unknown configuration keys
    - Values of the wrong type
    """

    code: int = 104


class UnboundReferenceError(ConfigurationError):
    """A configuration value was referenced before being defined.

    The gate never substitutes a silent default for an unset value: an unset
    environment variable in a command placeholder, a required setting left
    empty, or a missing USER all end up here. This is an internal pipeline
    defect, not a user input error.
    """

    code: int = 105

    def __init__(
        self,
        name: str,
        message: str | None = None,
        *,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message or f"{name}: unbound variable", cause=cause)
        self.name = name


class StageFailure(PresubmitError):
    """A pipeline stage finished with a non-zero status.

    Attributes:
        stage_name: Name of the failing stage
        exit_code: Status surfaced as the pipeline's exit code
        details: Stage-specific failure details
    """

    code: int = 200

    def __init__(
        self,
        message: str,
        *,
        stage_name: str,
        exit_code: int,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.stage_name = stage_name
        self.exit_code = exit_code
        self.details = details or {}


class BuildFailure(StageFailure):
    """The build system returned non-zero."""

    code: int = 201


class TestFailure(StageFailure):
    """A system test program returned non-zero."""

    __test__ = False  # keep pytest from collecting this class

    code: int = 202

    @property
    def test_path(self) -> str | None:
        return self.details.get("test_path")


class LeakDetected(StageFailure):
    """A developer-identifying string was found in tracked content."""

    code: int = 203

    @property
    def identifier(self) -> str | None:
        """Which class of identifier leaked ("username" or "hostname")."""
        return self.details.get("identifier")

    @property
    def paths(self) -> list[str]:
        return list(self.details.get("paths", []))


class DelegateFailure(StageFailure):
    """The precheck delegate returned non-zero."""

    code: int = 204


class VersionControlError(PresubmitError):
    """Querying the version-control system failed.

    Attributes:
        exit_code: Status of the failed query command
    """

    code: int = 106

    def __init__(self, message: str, *, exit_code: int, cause: Exception | None = None) -> None:
        super().__init__(message, cause=cause)
        self.exit_code = exit_code
