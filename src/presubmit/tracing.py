"""OpenTelemetry tracing for presubmit.

Every pipeline run, stage and external command gets a span, so a slow or
failing gate can be inspected in any OpenTelemetry backend.

Usage:
    from presubmit.tracing import configure_tracing, trace_stage

    # Configure once at startup
    configure_tracing(service_name="presubmit")

    with trace_stage("build") as span:
        result = stage.execute(context)
        span.set_attribute("stage.exit_code", result.exit_code)

Until configure_tracing() is called spans go to whatever global provider is
installed, which is the OpenTelemetry no-op provider by default.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.trace import Status, StatusCode

if TYPE_CHECKING:
    from opentelemetry.trace import Span, Tracer


INSTRUMENTATION_NAME = "presubmit"

_tracer: Tracer | None = None
_configured = False


def configure_tracing(
    service_name: str = "presubmit",
    service_version: str | None = None,
    environment: str | None = None,
    tracer_provider: TracerProvider | None = None,
) -> None:
    """Configure OpenTelemetry tracing for presubmit.

    Call this once at startup. Exporters are attached to the provider
    separately (e.g., OTLP, Jaeger, Zipkin).

    Args:
        service_name: Name of the service (appears in traces)
        service_version: Optional version string
        environment: Optional environment (local, ci)
        tracer_provider: Use this provider instead of installing a new
            global one. Tests pass a provider wired to an in-memory exporter.
    """
    global _tracer, _configured

    if tracer_provider is None:
        resource_attrs = {"service.name": service_name}
        if service_version:
            resource_attrs["service.version"] = service_version
        if environment:
            resource_attrs["deployment.environment"] = environment

        tracer_provider = TracerProvider(resource=Resource.create(resource_attrs))
        if not _configured:
            trace.set_tracer_provider(tracer_provider)

    _tracer = tracer_provider.get_tracer(
        instrumenting_module_name=INSTRUMENTATION_NAME,
        instrumenting_library_version=service_version,
    )
    _configured = True


def reset_tracing() -> None:
    """Forget the configured tracer. Used by tests."""
    global _tracer, _configured
    _tracer = None
    _configured = False


def get_tracer() -> Tracer:
    """Get the configured tracer, falling back to the global provider."""
    global _tracer

    if _tracer is None:
        _tracer = trace.get_tracer(INSTRUMENTATION_NAME)
    return _tracer


@contextmanager
def trace_operation(
    name: str,
    **attributes: Any,
) -> Iterator[Span]:
    """Context manager for tracing an operation.

    Sets the given attributes, records exceptions raised inside the block
    and marks the span as errored before re-raising.
    """
    tracer = get_tracer()

    with tracer.start_as_current_span(name) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, str(value))

        try:
            yield span
        except Exception as e:
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise


@contextmanager
def trace_run(entrypoint: str) -> Iterator[Span]:
    """Trace a whole pipeline run."""
    with trace_operation("pipeline.run", entrypoint=entrypoint) as span:
        yield span


@contextmanager
def trace_stage(stage_name: str) -> Iterator[Span]:
    """Trace a stage execution."""
    with trace_operation("stage.execute", stage_name=stage_name) as span:
        yield span


@contextmanager
def trace_command(argv: Sequence[str], cwd: str | None = None) -> Iterator[Span]:
    """Trace one external command."""
    with trace_operation("command.exec", argv=" ".join(argv), cwd=cwd) as span:
        yield span


def mark_failed(span: Span, description: str) -> None:
    """Flag a span as errored without an exception being raised."""
    span.set_status(Status(StatusCode.ERROR, description))
