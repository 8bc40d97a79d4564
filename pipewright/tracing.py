"""
Pipeline Tracing
================
OpenTelemetry spans for pipeline runs and stage attempts.

A run is wrapped in one `pipeline.run` span; every stage attempt opens a child
`pipeline.stage` span that carries the stage name, ordinal, attempt number and
outcome. When ENABLE_TRACING=true the spans are exported over OTLP/HTTP;
otherwise the global no-op tracer absorbs them.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

import atexit
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional, Sequence

from loguru import logger
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from pipewright.config import TRACING

SERVICE_NAME_VALUE = TRACING.SERVICE_NAME
OTLP_ENDPOINT = TRACING.OTLP_ENDPOINT
ENABLE_TRACING = TRACING.ENABLED

MAX_ATTRIBUTE_CHARS = 2048
MAX_LIST_ITEMS = 25

RUN_SPAN = "pipeline.run"
STAGE_SPAN = "pipeline.stage"

_provider: Optional[TracerProvider] = None
_tracer: Optional[trace.Tracer] = None


def _shutdown_provider() -> None:
    if _provider is None:
        return
    try:
        _provider.shutdown()
    except Exception as e:
        logger.debug("Tracer provider shutdown failed: {}: {}", type(e).__name__, e)


def setup_tracing(service_name: str = SERVICE_NAME_VALUE) -> trace.Tracer:
    """
    Install an OTLP-exporting tracer provider and return the pipeline tracer.

    httpx is instrumented as well, so Claude calls made by codegen stages and
    triage remediators appear under the stage span that issued them.
    """
    global _provider

    _provider = TracerProvider(resource=Resource.create({SERVICE_NAME: service_name}))
    _provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=OTLP_ENDPOINT)))
    trace.set_tracer_provider(_provider)

    HTTPXClientInstrumentor().instrument()
    atexit.register(_shutdown_provider)

    logger.info("Tracing enabled: exporting pipeline spans to {}", OTLP_ENDPOINT)
    return trace.get_tracer(service_name)


def get_tracer(name: str = SERVICE_NAME_VALUE) -> trace.Tracer:
    """Get a tracer instance for creating spans."""
    return trace.get_tracer(name)


def init_tracing() -> trace.Tracer:
    """Return the process-wide pipeline tracer, setting up export on first use."""
    global _tracer
    if _tracer is None:
        _tracer = setup_tracing() if ENABLE_TRACING else get_tracer()
    return _tracer


def _attribute_value(value: Any) -> Any:
    """Coerce a value into an OTel attribute type; None means drop it."""
    if value is None:
        return None
    if isinstance(value, str):
        return value[:MAX_ATTRIBUTE_CHARS]
    if isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, (list, tuple)):
        return [str(x)[:256] for x in list(value)[:MAX_LIST_ITEMS]]
    return str(value)[:MAX_ATTRIBUTE_CHARS]


def safe_set_span_attributes(span: Any, attributes: Mapping[str, Any]) -> None:
    """Best-effort attribute setter.

    Safe to call with a no-op span or None. None values and empty keys are
    skipped; strings and sequences are truncated.
    """
    setter = getattr(span, "set_attribute", None)
    if not callable(setter):
        return

    for key, value in attributes.items():
        if not isinstance(key, str) or not key:
            continue
        coerced = _attribute_value(value)
        if coerced is None:
            continue
        try:
            setter(key, coerced)
        except Exception as e:
            logger.debug("Dropping span attribute {}: {}: {}", key, type(e).__name__, e)


@contextmanager
def run_span(run_id: str, stage_names: Sequence[str]) -> Iterator[Any]:
    """Open the span that covers one whole pipeline run."""
    with init_tracing().start_as_current_span(RUN_SPAN) as span:
        safe_set_span_attributes(
            span,
            {
                "pipeline.run_id": run_id,
                "pipeline.stage_count": len(stage_names),
                "pipeline.stages": list(stage_names),
            },
        )
        yield span


@contextmanager
def stage_span(stage: str, ordinal: Optional[int], attempt: int) -> Iterator[Any]:
    """Open the span for a single stage attempt."""
    with init_tracing().start_as_current_span(STAGE_SPAN) as span:
        safe_set_span_attributes(
            span,
            {"stage.name": stage, "stage.ordinal": ordinal, "stage.attempt": attempt},
        )
        yield span


def record_stage_outcome(span: Any, result: Any) -> None:
    """Attach a StageResult's outcome to its attempt span."""
    safe_set_span_attributes(
        span,
        {
            "stage.status": result.status.value,
            "stage.exit_code": result.exit_code,
            "stage.error_type": result.error_type,
            "stage.duration_seconds": result.duration_seconds,
            "stage.tool": result.tool.name if result.tool is not None else None,
        },
    )


def record_run_outcome(span: Any, summary: Any) -> None:
    """Attach a RunSummary's status and test totals to the run span."""
    safe_set_span_attributes(
        span,
        {
            "pipeline.status": summary.status.value,
            "pipeline.tests_passed": summary.tests_passed,
            "pipeline.tests_failed": summary.tests_failed,
            "pipeline.cancelled": summary.cancelled,
        },
    )
