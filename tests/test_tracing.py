"""
Tracing Module Tests
====================
Tests for OpenTelemetry tracing setup.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

import pytest
from unittest.mock import patch, MagicMock
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))


class TestTracingSetup:
    """Tests for tracing module configuration."""

    @pytest.mark.unit
    def test_service_name_constant(self):
        """Service name should be defined."""
        from pipewright.tracing import SERVICE_NAME_VALUE

        assert SERVICE_NAME_VALUE == "pipewright"

    @pytest.mark.unit
    def test_otlp_endpoint_default(self):
        """OTLP endpoint should have sensible default."""
        from pipewright.tracing import OTLP_ENDPOINT

        assert "localhost" in OTLP_ENDPOINT or "4318" in OTLP_ENDPOINT

    @pytest.mark.unit
    @patch('pipewright.tracing.atexit')
    @patch('pipewright.tracing.TracerProvider')
    @patch('pipewright.tracing.OTLPSpanExporter')
    @patch('pipewright.tracing.BatchSpanProcessor')
    @patch('pipewright.tracing.trace')
    @patch('pipewright.tracing.HTTPXClientInstrumentor')
    def test_setup_tracing_creates_provider(
        self, mock_httpx, mock_trace, mock_processor, mock_exporter, mock_provider, mock_atexit
    ):
        """setup_tracing should create and configure TracerProvider."""
        from pipewright.tracing import setup_tracing

        mock_trace.get_tracer.return_value = MagicMock()

        setup_tracing()

        mock_provider.assert_called_once()
        mock_trace.set_tracer_provider.assert_called_once()
        mock_httpx.return_value.instrument.assert_called_once()

    @pytest.mark.unit
    @patch('pipewright.tracing.trace')
    def test_get_tracer_returns_tracer(self, mock_trace):
        """get_tracer should return a tracer instance."""
        from pipewright.tracing import get_tracer

        mock_tracer = MagicMock()
        mock_trace.get_tracer.return_value = mock_tracer

        tracer = get_tracer("test-component")

        mock_trace.get_tracer.assert_called_with("test-component")
        assert tracer == mock_tracer

    @pytest.mark.unit
    @patch('pipewright.tracing.trace')
    def test_get_tracer_with_default_name(self, mock_trace):
        """get_tracer should use service name as default."""
        from pipewright.tracing import get_tracer, SERVICE_NAME_VALUE

        mock_trace.get_tracer.return_value = MagicMock()

        get_tracer()

        mock_trace.get_tracer.assert_called_with(SERVICE_NAME_VALUE)

    @pytest.mark.unit
    def test_init_tracing_disabled_returns_cached_tracer(self):
        """init_tracing should not set up export when tracing is disabled."""
        import pipewright.tracing as tracing

        with patch.object(tracing, "ENABLE_TRACING", False), patch.object(tracing, "_tracer", None), patch.object(
            tracing, "setup_tracing"
        ) as mock_setup:
            first = tracing.init_tracing()
            second = tracing.init_tracing()

        mock_setup.assert_not_called()
        assert first is second


class TestTracingIntegration:
    """Integration tests for tracing with the runner."""

    @pytest.mark.unit
    def test_runner_imports_span_helpers(self):
        """Runner module should open its spans through the tracing helpers."""
        from pipewright.pipeline.runner import record_run_outcome, record_stage_outcome, run_span, stage_span

        assert callable(run_span)
        assert callable(stage_span)
        assert callable(record_run_outcome)
        assert callable(record_stage_outcome)

    @pytest.mark.unit
    def test_run_span_sets_run_attributes(self):
        import pipewright.tracing as tracing

        tracer = MagicMock()
        span = tracer.start_as_current_span.return_value.__enter__.return_value
        with patch.object(tracing, "init_tracing", return_value=tracer):
            with tracing.run_span("run-1", ["generate", "test"]) as opened:
                assert opened is span

        tracer.start_as_current_span.assert_called_once_with(tracing.RUN_SPAN)
        span.set_attribute.assert_any_call("pipeline.run_id", "run-1")
        span.set_attribute.assert_any_call("pipeline.stage_count", 2)
        span.set_attribute.assert_any_call("pipeline.stages", ["generate", "test"])

    @pytest.mark.unit
    def test_stage_span_skips_missing_ordinal(self):
        import pipewright.tracing as tracing

        tracer = MagicMock()
        span = tracer.start_as_current_span.return_value.__enter__.return_value
        with patch.object(tracing, "init_tracing", return_value=tracer):
            with tracing.stage_span("lint", None, 2):
                pass

        tracer.start_as_current_span.assert_called_once_with(tracing.STAGE_SPAN)
        keys = [c.args[0] for c in span.set_attribute.call_args_list]
        assert keys == ["stage.name", "stage.attempt"]

    @pytest.mark.unit
    def test_record_stage_outcome_uses_result_fields(self):
        from pipewright.capabilities.base import ToolInfo
        from pipewright.pipeline.stage import StageResult, StageStatus
        from pipewright.tracing import record_stage_outcome

        span = MagicMock()
        result = StageResult(
            stage="lint",
            ordinal=3,
            status=StageStatus.FAILURE,
            exit_code=1,
            error_type="StageFailure",
            duration_seconds=0.5,
            tool=ToolInfo("ruff", "0.6.9"),
        )

        record_stage_outcome(span, result)

        span.set_attribute.assert_any_call("stage.status", "failure")
        span.set_attribute.assert_any_call("stage.exit_code", 1)
        span.set_attribute.assert_any_call("stage.error_type", "StageFailure")
        span.set_attribute.assert_any_call("stage.tool", "ruff")

    @pytest.mark.unit
    def test_record_run_outcome_uses_summary_fields(self):
        from pipewright.pipeline.summary import RunStatus
        from pipewright.tracing import record_run_outcome

        span = MagicMock()
        summary = MagicMock(status=RunStatus.PARTIAL, tests_passed=4, tests_failed=1, cancelled=False)

        record_run_outcome(span, summary)

        span.set_attribute.assert_any_call("pipeline.status", "partial")
        span.set_attribute.assert_any_call("pipeline.tests_passed", 4)
        span.set_attribute.assert_any_call("pipeline.cancelled", False)


class TestTracingAttributeHelpers:
    """Tests for safe span attribute setters."""

    @pytest.mark.unit
    def test_safe_set_span_attributes_noop_span(self):
        from pipewright.tracing import safe_set_span_attributes

        class NoopSpan:
            pass

        safe_set_span_attributes(NoopSpan(), {"k": "v"})
        safe_set_span_attributes(None, {"k": "v"})

    @pytest.mark.unit
    def test_safe_set_span_attributes_skips_none(self):
        from pipewright.tracing import safe_set_span_attributes

        span = MagicMock()
        safe_set_span_attributes(span, {"stage.exit_code": None, "stage.name": "lint"})

        span.set_attribute.assert_called_once_with("stage.name", "lint")

    @pytest.mark.unit
    def test_safe_set_span_attributes_truncates_long_strings(self):
        from pipewright.tracing import safe_set_span_attributes

        span = MagicMock()
        long_value = "x" * 5000
        safe_set_span_attributes(span, {"long": long_value})

        span.set_attribute.assert_called()
        args, _kwargs = span.set_attribute.call_args
        assert args[0] == "long"
        assert isinstance(args[1], str)
        assert len(args[1]) == 2048

    @pytest.mark.unit
    def test_safe_set_span_attributes_handles_non_serializable(self):
        from pipewright.tracing import safe_set_span_attributes

        span = MagicMock()
        safe_set_span_attributes(
            span,
            {
                "path": Path("foo"),
                "obj": object(),
                "nested": {"x": object()},
                "seq": ["a" * 5000, object()],
                123: "ignored",
            },
        )

        # Best-effort: should not crash; may skip some keys.
        assert span.set_attribute.call_count >= 1
