"""
presubmit - a pre-submission validation gate.

Builds the project, runs its system test programs against the built
artifacts, optionally scans tracked files for developer-identifying strings,
then hands off to the project's precheck script. The first failing stage
stops the run and its status becomes the process exit status.
"""

__version__ = "0.1.0"

from presubmit.config import PresubmitConfig, load_config
from presubmit.errors import (
    BuildFailure,
    ConfigurationError,
    DelegateFailure,
    LeakDetected,
    PresubmitBaseException,
    PresubmitError,
    StageFailure,
    TestFailure,
    UnboundReferenceError,
    VersionControlError,
)
from presubmit.models.run import CommandTrace, Entrypoint, PipelineRun, StageRecord
from presubmit.models.status import StageStatus
from presubmit.pipeline import Pipeline, build_stages, run
from presubmit.process import CommandResult, CommandRunner
from presubmit.stages import (
    BuildStage,
    CommandStage,
    Identity,
    LeakGuardStage,
    PrecheckStage,
    Stage,
    StageContext,
    StageResult,
    SystemTestStage,
)

__all__ = [
    # Pipeline
    "Entrypoint",
    "Pipeline",
    "PipelineRun",
    "StageRecord",
    "StageStatus",
    "CommandTrace",
    "build_stages",
    "run",
    # Configuration
    "PresubmitConfig",
    "load_config",
    # Stages
    "Stage",
    "StageContext",
    "StageResult",
    "CommandStage",
    "BuildStage",
    "SystemTestStage",
    "LeakGuardStage",
    "Identity",
    "PrecheckStage",
    # Process execution
    "CommandRunner",
    "CommandResult",
    # Errors
    "PresubmitBaseException",
    "PresubmitError",
    "ConfigurationError",
    "UnboundReferenceError",
    "VersionControlError",
    "StageFailure",
    "BuildFailure",
    "TestFailure",
    "LeakDetected",
    "DelegateFailure",
]
