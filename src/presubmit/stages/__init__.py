"""Pipeline stages."""

from presubmit.stages.build import BuildStage
from presubmit.stages.command import CommandStage
from presubmit.stages.interface import Stage, StageContext
from presubmit.stages.leak_guard import Identity, LeakGuardStage, LeakPattern, find_leaks, tracked_files
from presubmit.stages.precheck import PrecheckStage
from presubmit.stages.result import StageResult
from presubmit.stages.system_tests import SystemTestStage, discover_tests

__all__ = [
    "BuildStage",
    "CommandStage",
    "Identity",
    "LeakGuardStage",
    "LeakPattern",
    "PrecheckStage",
    "Stage",
    "StageContext",
    "StageResult",
    "SystemTestStage",
    "discover_tests",
    "find_leaks",
    "tracked_files",
]
