"""Pipeline runner.

Executes an ordered list of stages one at a time. Each stage calls one
capability; its captured output is stored in the artifact sink, failures of
remediable stages go through the remediation sub-step (with a bounded retry),
and a failed required stage aborts the rest of the run. The run always ends
with a RunSummary; only ConfigurationError reaches the caller.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import asyncio
import json
import time
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from pipewright.capabilities.base import InvocationRequest, InvocationResult, ToolInfo
from pipewright.config import ARTIFACTS, RUNNER, TIMEOUTS
from pipewright.pipeline.artifacts import (
    ArtifactSink,
    FilesystemArtifactSink,
    run_artifact_key,
    stage_artifact_key,
)
from pipewright.pipeline.context import PipelineContext, new_context
from pipewright.pipeline.errors import (
    ContextKeyConflict,
    MissingInputError,
    RunCancelled,
    StageFailure,
    TimeoutFailure,
)
from pipewright.pipeline.loader import load_pipeline_config
from pipewright.pipeline.policy import RunnerPolicy
from pipewright.pipeline.remediation import NullRemediator, RemediationOutcome, Remediator
from pipewright.pipeline.report import RunReport, write_report
from pipewright.pipeline.stage import Stage, StageResult, StageStatus
from pipewright.pipeline.summary import RunSummary, build_run_summary
from pipewright.pipeline.validation import validate_stages
from pipewright.tracing import record_run_outcome, record_stage_outcome, run_span, stage_span
from pipewright.utils.text import first_line, format_capture, truncate_head_tail


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class _DeadlineExceeded(Exception):
    """Internal: a guarded await ran past its timeout."""


@dataclass
class RunState:
    """Mutable state of one run, threaded through every runner call."""

    context: PipelineContext
    history: List[StageResult] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    tools: Dict[str, ToolInfo] = field(default_factory=dict)
    cancelled: bool = False
    abort_reason: Optional[str] = None


async def _cancel_and_wait(task: "asyncio.Future[Any]") -> None:
    if task.done():
        return
    task.cancel()
    results = await asyncio.gather(task, return_exceptions=True)
    for outcome in results:
        if isinstance(outcome, Exception):
            logger.debug("Cancelled call ended with {}: {}", type(outcome).__name__, outcome)


class PipelineRunner:
    """Sequential stage runner with failure triage."""

    def __init__(
        self,
        *,
        remediator: Optional[Remediator] = None,
        artifact_sink: Optional[ArtifactSink] = None,
        policy: Optional[RunnerPolicy] = None,
    ):
        self.remediator = remediator or NullRemediator()
        self.artifact_sink = artifact_sink
        self.policy = policy or RunnerPolicy()
        self._cancel_requested = False
        self._cancel_event: Optional[asyncio.Event] = None

    def request_cancel(self) -> None:
        """Interrupt the current invocation and skip the remaining stages."""
        self._cancel_requested = True
        if self._cancel_event is not None:
            self._cancel_event.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    async def run(self, stages: Sequence[Stage], *, run_id: Optional[str] = None) -> RunSummary:
        """Run stages in order and return the summary.

        Raises:
            ConfigurationError: the stage list is invalid; no stage is run.
        """
        ordered = validate_stages(stages)

        self._cancel_event = asyncio.Event()
        if self._cancel_requested:
            self._cancel_event.set()

        state = RunState(context=new_context(run_id))
        started_at = _utc_now_iso()
        t0 = time.monotonic()

        logger.info("Pipeline run {} starting: {} stages", state.context.run_id, len(ordered))

        with run_span(state.context.run_id, [s.name for s in ordered]) as span:
            for stage in ordered:
                if state.abort_reason is None and self._cancel_event.is_set():
                    state.cancelled = True
                    state.abort_reason = "run cancelled"

                if state.abort_reason is not None:
                    state.history.append(self._skipped(stage, state.abort_reason))
                    logger.warning("Stage '{}' skipped: {}", stage.name, state.abort_reason)
                    continue

                final = await self._run_stage(stage, state)

                if state.cancelled:
                    state.abort_reason = "run cancelled"
                elif final.failed and stage.required:
                    state.abort_reason = f"required stage '{stage.name}' failed"
                    logger.warning("Aborting run {}: {}", state.context.run_id, state.abort_reason)

            summary = build_run_summary(
                run_id=state.context.run_id,
                stages=ordered,
                history=state.history,
                recommendations=state.recommendations,
                started_at=started_at,
                finished_at=_utc_now_iso(),
                elapsed_seconds=time.monotonic() - t0,
                cancelled=state.cancelled,
            )
            record_run_outcome(span, summary)

        self._dump_run(state, summary)
        logger.info(
            "Pipeline run {} finished: status={} in {:.2f}s",
            summary.run_id,
            summary.status.value,
            summary.time_taken_seconds,
        )
        return summary

    async def _run_stage(self, stage: Stage, state: RunState) -> StageResult:
        attempt = 1
        result = await self._attempt(stage, state, attempt)

        rounds = 0
        while (
            result.failed
            and stage.remediable
            and not state.cancelled
            and result.error_type != MissingInputError.__name__
            and rounds < self.policy.retry_budget
        ):
            rounds += 1
            outcome = await self._remediate(stage, result, state)
            state.recommendations.append(outcome.recommendation)
            if not outcome.applied or state.cancelled:
                break
            attempt += 1
            logger.info("Retrying stage '{}' (attempt {}) after remediation", stage.name, attempt)
            result = await self._attempt(stage, state, attempt)

        if result.failed:
            logger.warning("Stage '{}' failed after {} attempt(s): {}", stage.name, attempt, result.error)
        return result

    async def _guarded(self, awaitable: Awaitable[Any], timeout: Optional[float]) -> Any:
        """Await a call while honouring the timeout and the cancel signal.

        Raises _DeadlineExceeded on timeout and RunCancelled when the run is
        cancelled (either via request_cancel or by cancelling the runner task).
        In both cases the call itself is cancelled first.
        """
        assert self._cancel_event is not None
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._cancel_event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            self._cancel_requested = True
            self._cancel_event.set()
            await _cancel_and_wait(task)
            raise RunCancelled("run cancelled while waiting on an external call")
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        await _cancel_and_wait(task)
        if waiter in done:
            raise RunCancelled("run cancelled while waiting on an external call")
        raise _DeadlineExceeded()

    async def _describe_tool(self, stage: Stage, state: RunState) -> Optional[ToolInfo]:
        if stage.name in state.tools:
            return state.tools[stage.name]
        try:
            tool = await self._guarded(stage.capability.describe_tool(), float(TIMEOUTS.VERSION_PROBE))
        except RunCancelled:
            state.cancelled = True
            return None
        except Exception as e:
            logger.debug("describe_tool failed for stage '{}': {}: {}", stage.name, type(e).__name__, e)
            tool = ToolInfo(name=type(stage.capability).__name__)
        state.tools[stage.name] = tool
        return tool

    async def _attempt(self, stage: Stage, state: RunState, attempt: int) -> StageResult:
        started_at = _utc_now_iso()
        t0 = time.monotonic()

        with stage_span(stage.name, stage.ordinal, attempt) as span:
            tool = await self._describe_tool(stage, state)
            invocation: Optional[InvocationResult] = None
            error_type: Optional[str] = None
            error: Optional[str] = None
            diagnostic = ""
            produced: Dict[str, Any] = {}

            try:
                if state.cancelled:
                    raise RunCancelled("run cancelled before the stage was invoked")
                inputs = state.context.resolve(stage.inputs, stage=stage.name)
            except (MissingInputError, RunCancelled) as e:
                error_type, error, diagnostic = type(e).__name__, str(e), str(e)
            else:
                timeout = stage.timeout_seconds if stage.timeout_seconds is not None else self.policy.default_timeout_seconds
                request = InvocationRequest(
                    stage=stage.name,
                    run_id=state.context.run_id,
                    attempt=attempt,
                    started_at=started_at,
                    inputs=inputs,
                )
                logger.info("Stage {} '{}' starting (attempt {})", stage.ordinal, stage.name, attempt)
                try:
                    invocation = await self._guarded(stage.capability.invoke(request), timeout)
                except _DeadlineExceeded:
                    failure = TimeoutFailure(stage.name, float(timeout or 0))
                    error_type, error, diagnostic = type(failure).__name__, str(failure), str(failure)
                except RunCancelled as e:
                    state.cancelled = True
                    error_type, error, diagnostic = type(e).__name__, str(e), str(e)
                except Exception as e:
                    error_type = StageFailure.__name__
                    error = f"{type(e).__name__}: {e}"
                    diagnostic = traceback.format_exc()

            captured = ""
            if invocation is not None:
                captured = format_capture(stdout=invocation.stdout, stderr=invocation.stderr)
                if invocation.success:
                    missing = [k for k in stage.outputs if k not in invocation.outputs]
                    if missing:
                        error_type = StageFailure.__name__
                        error = f"declared outputs not produced: {', '.join(missing)}"
                    else:
                        produced = {k: invocation.outputs[k] for k in stage.outputs}
                        try:
                            state.context.put_many(produced, stage=stage.name)
                        except ContextKeyConflict as e:
                            error_type, error = type(e).__name__, str(e)
                            produced = {}
                else:
                    error_type = StageFailure.__name__
                    detail = first_line(invocation.stderr) or first_line(invocation.stdout)
                    error = f"exited with code {invocation.exit_code}"
                    if detail:
                        error += f": {detail}"
                if error_type is not None:
                    diagnostic = captured

            finished_at = _utc_now_iso()
            status = StageStatus.SUCCESS if error_type is None else StageStatus.FAILURE

            header = (
                f"stage: {stage.name}\nattempt: {attempt}\nstarted_at: {started_at}\n"
                f"finished_at: {finished_at}\nstatus: {status.value}\n"
            )
            if error:
                header += f"error: {error}\n"
            artifact_key = self._store_artifact(
                stage_artifact_key(stage.name, started_at, attempt),
                header + "\n" + (captured or diagnostic),
            )

            result = StageResult(
                stage=stage.name,
                ordinal=stage.ordinal or 0,
                status=status,
                attempt=attempt,
                started_at=started_at,
                finished_at=finished_at,
                duration_seconds=round(time.monotonic() - t0, 3),
                exit_code=invocation.exit_code if invocation is not None else None,
                error_type=error_type,
                error=error,
                diagnostic=truncate_head_tail(diagnostic, self.policy.max_diagnostic_chars),
                artifact_key=artifact_key,
                tool=tool,
                tests_passed=invocation.tests_passed if invocation is not None else None,
                tests_failed=invocation.tests_failed if invocation is not None else None,
                outputs=produced,
            )
            state.history.append(result)
            record_stage_outcome(span, result)

        if result.succeeded:
            logger.info("Stage '{}' succeeded in {:.2f}s", stage.name, result.duration_seconds)
        else:
            logger.warning("Stage '{}' attempt {} failed: {}", stage.name, attempt, error)
        return result

    async def _remediate(self, stage: Stage, failure: StageResult, state: RunState) -> RemediationOutcome:
        remediator = stage.remediator or self.remediator
        logger.info("Remediating stage '{}' with {}", stage.name, type(remediator).__name__)
        timeout = self.policy.remediation_timeout_seconds

        try:
            outcome = await self._guarded(remediator.remediate(stage, failure), timeout)
        except RunCancelled:
            state.cancelled = True
            return RemediationOutcome(
                applied=False,
                recommendation=f"Remediation for stage '{stage.name}' was interrupted by cancellation.",
            )
        except _DeadlineExceeded:
            return RemediationOutcome(
                applied=False,
                recommendation=(
                    f"Remediation for stage '{stage.name}' timed out after {timeout:g} seconds; "
                    "manual review required."
                ),
            )
        except Exception as e:
            logger.exception("Remediator {} raised for stage '{}'", type(remediator).__name__, stage.name)
            return RemediationOutcome(
                applied=False,
                recommendation=(
                    f"Remediation for stage '{stage.name}' failed: {type(e).__name__}: {e}; "
                    "manual review required."
                ),
            )

        logger.info("Remediation for stage '{}': applied={}", stage.name, outcome.applied)
        return outcome

    def _skipped(self, stage: Stage, reason: str) -> StageResult:
        return StageResult(
            stage=stage.name,
            ordinal=stage.ordinal or 0,
            status=StageStatus.SKIPPED,
            error=f"skipped: {reason}",
        )

    def _store_artifact(self, key: str, body: str) -> Optional[str]:
        if self.artifact_sink is None:
            return None
        try:
            self.artifact_sink.put_text(key, truncate_head_tail(body, self.policy.max_artifact_chars))
        except Exception:
            logger.exception("Failed to store artifact '{}'", key)
            return None
        return key

    def _dump_run(self, state: RunState, summary: RunSummary) -> None:
        if self.artifact_sink is None:
            return
        try:
            self.artifact_sink.put_json(run_artifact_key(summary.run_id, "context.json"), state.context.to_payload())
            self.artifact_sink.put_json(run_artifact_key(summary.run_id, "summary.json"), summary.to_payload())
        except Exception:
            logger.exception("Failed to dump run {} to the artifact sink", summary.run_id)


async def run_pipeline_from_config(
    config_path: str | Path,
    *,
    artifacts_dir: Optional[str | Path] = None,
    report_path: Optional[str | Path] = None,
    on_runner: Optional[Callable[[PipelineRunner], None]] = None,
) -> Tuple[RunSummary, Path]:
    """Load a pipeline config, run it, and write the report and full summary.

    Args:
        config_path: Pipeline configuration JSON.
        artifacts_dir: Artifact root (default: <workdir>/artifacts).
        report_path: Report location (default: <artifacts_dir>/run_report.json).
        on_runner: Called with the runner before the run starts (e.g. to wire
            signal handlers to request_cancel).

    Returns:
        (summary, report_path)

    Raises:
        ConfigurationError: the configuration or stage graph is invalid.
    """
    definition = load_pipeline_config(config_path)

    artifacts_root = Path(artifacts_dir) if artifacts_dir else definition.workdir / ARTIFACTS.ROOT_DIR
    sink = FilesystemArtifactSink(artifacts_root)

    runner = PipelineRunner(
        remediator=definition.remediator,
        artifact_sink=sink,
        policy=definition.policy,
    )
    if on_runner is not None:
        on_runner(runner)

    summary = await runner.run(definition.stages)

    out_path = Path(report_path) if report_path else sink.root_dir / RUNNER.REPORT_FILENAME
    write_report(RunReport.from_summary(summary), out_path)

    summary_path = out_path.with_name(RUNNER.SUMMARY_FILENAME)
    summary_path.write_text(json.dumps(summary.to_payload(), indent=2, sort_keys=True) + "\n", encoding="utf-8")

    logger.info("Run report written to {}", out_path)
    return summary, out_path
