"""Run summary assembly.

A RunSummary is built once, at the end of a run, from the full StageResult
history. It is frozen: nothing mutates it after assembly.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from pipewright.capabilities.base import ToolInfo
from pipewright.pipeline.stage import Stage, StageResult, StageStatus


class RunStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


def final_results(history: Iterable[StageResult]) -> List[StageResult]:
    """Last result per stage, in stage order."""
    latest: Dict[str, StageResult] = {}
    for result in history:
        latest[result.stage] = result
    return sorted(latest.values(), key=lambda r: r.ordinal)


def derive_status(stages: Sequence[Stage], finals: Sequence[StageResult], *, cancelled: bool = False) -> RunStatus:
    """Overall status from each stage's final result.

    failed: the run was cancelled, or a required stage ended in failure.
    success: every stage ended in success.
    partial: everything else (only optional stages ended in failure).
    """
    if cancelled:
        return RunStatus.FAILED

    required = {s.name: s.required for s in stages}
    if any(r.failed and required.get(r.stage, True) for r in finals):
        return RunStatus.FAILED
    if len(finals) == len(stages) and all(r.succeeded for r in finals):
        return RunStatus.SUCCESS
    return RunStatus.PARTIAL


def aggregate_test_counts(finals: Iterable[StageResult]) -> Tuple[int, int]:
    passed = 0
    failed = 0
    for r in finals:
        passed += r.tests_passed or 0
        failed += r.tests_failed or 0
    return passed, failed


def collect_tools(history: Iterable[StageResult]) -> Tuple[ToolInfo, ...]:
    """Distinct tools in first-use order; skipped stages contribute nothing."""
    seen: List[ToolInfo] = []
    for r in history:
        if r.tool is not None and r.tool not in seen:
            seen.append(r.tool)
    return tuple(seen)


@dataclass(frozen=True)
class RunSummary:
    """Final structured record of one pipeline run."""

    run_id: str
    status: RunStatus
    started_at: str
    finished_at: str
    time_taken_seconds: float
    history: Tuple[StageResult, ...] = ()
    recommendations: Tuple[str, ...] = ()
    tools_used: Tuple[ToolInfo, ...] = ()
    tests_passed: int = 0
    tests_failed: int = 0
    cancelled: bool = False

    @property
    def stage_results(self) -> List[StageResult]:
        """One entry per stage: the final attempt, or the skipped marker."""
        return final_results(self.history)

    @property
    def failures(self) -> List[StageResult]:
        """Every failed attempt, including ones later remediated."""
        return [r for r in self.history if r.status is StageStatus.FAILURE]

    @property
    def skipped(self) -> List[StageResult]:
        return [r for r in self.history if r.status is StageStatus.SKIPPED]

    def to_payload(self) -> Dict[str, Any]:
        return {
            "schema_version": "1.0",
            "run_id": self.run_id,
            "status": self.status.value,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "time_taken_seconds": self.time_taken_seconds,
            "history": [r.to_dict() for r in self.history],
            "recommendations": list(self.recommendations),
            "tools_used": [t.to_dict() for t in self.tools_used],
            "tests_passed": self.tests_passed,
            "tests_failed": self.tests_failed,
            "cancelled": self.cancelled,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "RunSummary":
        return cls(
            run_id=str(payload["run_id"]),
            status=RunStatus(payload["status"]),
            started_at=str(payload["started_at"]),
            finished_at=str(payload["finished_at"]),
            time_taken_seconds=float(payload["time_taken_seconds"]),
            history=tuple(StageResult.from_dict(r) for r in payload.get("history") or []),
            recommendations=tuple(str(r) for r in payload.get("recommendations") or []),
            tools_used=tuple(ToolInfo.from_dict(t) for t in payload.get("tools_used") or []),
            tests_passed=int(payload.get("tests_passed", 0)),
            tests_failed=int(payload.get("tests_failed", 0)),
            cancelled=bool(payload.get("cancelled", False)),
        )


def build_run_summary(
    *,
    run_id: str,
    stages: Sequence[Stage],
    history: Sequence[StageResult],
    recommendations: Sequence[str],
    started_at: str,
    finished_at: str,
    elapsed_seconds: float,
    cancelled: bool = False,
) -> RunSummary:
    finals = final_results(history)
    passed, failed = aggregate_test_counts(finals)
    return RunSummary(
        run_id=run_id,
        status=derive_status(stages, finals, cancelled=cancelled),
        started_at=started_at,
        finished_at=finished_at,
        time_taken_seconds=round(max(elapsed_seconds, 0.0), 3),
        history=tuple(history),
        recommendations=tuple(recommendations),
        tools_used=collect_tools(history),
        tests_passed=passed,
        tests_failed=failed,
        cancelled=cancelled,
    )


def exit_code_for(summary: RunSummary) -> int:
    """Process exit code: nonzero only when the run failed.

    `partial` exits 0 so callers tell "needs review" from a clean failure by
    reading the report body.
    """
    return 1 if summary.status is RunStatus.FAILED else 0
