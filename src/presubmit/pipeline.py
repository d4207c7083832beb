"""
Pipeline controller.

Sequences the stages for an entrypoint and enforces the run-wide policies:

- Fail-fast: the first terminal StageResult ends the run; later stages never
  start.
- Strict references: an unset setting or environment variable referenced by
  a stage fails that stage (UnboundReferenceError) instead of defaulting.
- Pipe failures: commands run through CommandRunner, which fails a pipe when
  any of its segments fails.

Entrypoints:
    LOCAL:      build -> system-tests -> leak-guard -> precheck
    AUTOMATED:  build -> system-tests -> precheck

Usage:
    from presubmit.pipeline import Entrypoint, run

    sys.exit(run(Entrypoint.AUTOMATED))
"""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence

from presubmit.config import PresubmitConfig, load_config
from presubmit.errors import ConfigurationError, PresubmitError
from presubmit.logging import bind_context, get_logger, unbind_context
from presubmit.models.run import Entrypoint, PipelineRun, StageRecord
from presubmit.models.status import StageStatus
from presubmit.process import CommandRunner
from presubmit.stages.build import BuildStage
from presubmit.stages.interface import Stage, StageContext
from presubmit.stages.leak_guard import Identity, LeakGuardStage
from presubmit.stages.precheck import PrecheckStage
from presubmit.stages.result import GENERIC_FAILURE, StageResult
from presubmit.stages.system_tests import SystemTestStage
from presubmit.tracing import mark_failed, trace_run, trace_stage

logger = get_logger(__name__)


def build_stages(
    entrypoint: Entrypoint,
    identity: Identity | None = None,
    environ: Mapping[str, str] | None = None,
) -> list[Stage]:
    """Declare the ordered stages for an entrypoint.

    For LOCAL the identity defaults to the current user and host, read now
    rather than while the guard runs.

    Raises:
        UnboundReferenceError: If LOCAL needs an identity and USER is unset
    """
    stages: list[Stage] = [BuildStage(), SystemTestStage()]
    if entrypoint is Entrypoint.LOCAL:
        stages.append(LeakGuardStage(identity or Identity.from_environment(environ)))
    stages.append(PrecheckStage())
    return stages


class Pipeline:
    """
    One entrypoint's ordered stages, ready to run.

    Args:
        entrypoint: Which configuration these stages belong to
        stages: Stages in execution order
        config: Effective configuration
        environ: Environment for ${NAME} placeholders (default: os.environ)
    """

    def __init__(
        self,
        entrypoint: Entrypoint,
        stages: Sequence[Stage],
        config: PresubmitConfig,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.entrypoint = entrypoint
        self.stages = list(stages)
        self.config = config
        self.environ = dict(os.environ if environ is None else environ)

    @classmethod
    def for_entrypoint(
        cls,
        entrypoint: Entrypoint,
        config: PresubmitConfig,
        identity: Identity | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> Pipeline:
        return cls(entrypoint, build_stages(entrypoint, identity, environ), config, environ)

    def run(self) -> PipelineRun:
        """Execute the stages in order, stopping at the first failure."""
        pipeline_run = PipelineRun(
            entrypoint=self.entrypoint,
            records=[StageRecord(stage) for stage in self.stages],
        )
        runner = CommandRunner(self.config.root, timeout=self.config.timeout, trace=pipeline_run.trace)
        context = StageContext(config=self.config, runner=runner, environ=self.environ)

        bind_context(entrypoint=str(self.entrypoint))
        logger.info("pipeline.started", stages=pipeline_run.stage_names, root=str(self.config.root))
        pipeline_run.start()
        try:
            with trace_run(str(self.entrypoint)) as span:
                for record in pipeline_run.records:
                    result = self._execute_stage(record, context)
                    if result.failed:
                        break
                span.set_attribute("pipeline.exit_code", pipeline_run.exit_code)
                failed = pipeline_run.failed_stage
                if failed is not None:
                    mark_failed(span, f"stage {failed.name} failed")
        finally:
            pipeline_run.finish()
            context.runner.stage = None

        if pipeline_run.succeeded:
            logger.info("pipeline.succeeded", duration=pipeline_run.duration)
        else:
            failed = pipeline_run.failed_stage
            logger.error(
                "pipeline.failed",
                stage=failed.name if failed else None,
                exit_code=pipeline_run.exit_code,
                duration=pipeline_run.duration,
            )
        unbind_context("entrypoint")
        return pipeline_run

    def _execute_stage(self, record: StageRecord, context: StageContext) -> StageResult:
        record.status = StageStatus.RUNNING
        context.runner.stage = record.name
        logger.info("stage.started", stage=record.name)

        with trace_stage(record.name) as span:
            try:
                result = record.stage.execute(context)
            except PresubmitError as e:
                result = StageResult.terminal(error=e.message, details={"error_type": type(e).__name__})
            except Exception as e:
                # Stage bugs are fatal for the run like any other failure.
                logger.exception("stage.crashed", stage=record.name)
                result = StageResult.terminal(
                    error=f"{type(e).__name__}: {e}",
                    details={"error_type": type(e).__name__},
                )
            span.set_attribute("stage.exit_code", result.exit_code)
            if result.failed:
                mark_failed(span, result.error or "failed")

        record.result = result
        record.status = result.status
        if result.failed:
            logger.error("stage.failed", stage=record.name, exit_code=result.exit_code, error=result.error)
        else:
            logger.info("stage.succeeded", stage=record.name)
        return result


def run(
    entrypoint: Entrypoint,
    config: PresubmitConfig | None = None,
    identity: Identity | None = None,
    environ: Mapping[str, str] | None = None,
) -> int:
    """Run an entrypoint and return its exit status.

    Returns:
        0 if every stage succeeded, otherwise the first failing stage's
        status. A configuration problem found before any stage starts,
        such as an invalid config file or USER unset for LOCAL, is 1.
    """
    try:
        if config is None:
            config = load_config(environ=environ)
        pipeline = Pipeline.for_entrypoint(entrypoint, config, identity, environ)
    except ConfigurationError as e:
        logger.error("pipeline.config_error", entrypoint=str(entrypoint), error=e.message)
        return GENERIC_FAILURE
    return pipeline.run().exit_code
