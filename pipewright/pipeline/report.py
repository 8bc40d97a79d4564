"""Final run report.

The report has a fixed external schema:

    {status, time_taken_seconds, tools_used: [{name, version}], tests_passed,
     tests_failed, failures: [...], recommendations: [...]}

`RunReport.to_dict` and `RunReport.from_dict` validate against
schemas/run_report.schema.json and round-trip losslessly.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from pipewright.capabilities.base import ToolInfo
from pipewright.pipeline.stage import StageResult
from pipewright.pipeline.summary import RunStatus, RunSummary
from pipewright.utils.schema_validation import validate_run_report


@dataclass(frozen=True)
class FailureRecord:
    """One failed stage attempt as it appears in the report."""

    stage: str
    attempt: int
    error_type: Optional[str] = None
    error: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    artifact_key: Optional[str] = None

    @classmethod
    def from_result(cls, result: StageResult) -> "FailureRecord":
        return cls(
            stage=result.stage,
            attempt=result.attempt,
            error_type=result.error_type,
            error=result.error,
            started_at=result.started_at,
            finished_at=result.finished_at,
            artifact_key=result.artifact_key,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "attempt": self.attempt,
            "error_type": self.error_type,
            "error": self.error,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "artifact_key": self.artifact_key,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FailureRecord":
        return cls(
            stage=data["stage"],
            attempt=int(data["attempt"]),
            error_type=data.get("error_type"),
            error=data.get("error"),
            started_at=data.get("started_at"),
            finished_at=data.get("finished_at"),
            artifact_key=data.get("artifact_key"),
        )


@dataclass(frozen=True)
class RunReport:
    status: RunStatus
    time_taken_seconds: float
    tools_used: Tuple[ToolInfo, ...] = ()
    tests_passed: int = 0
    tests_failed: int = 0
    failures: Tuple[FailureRecord, ...] = ()
    recommendations: Tuple[str, ...] = ()

    @classmethod
    def from_summary(cls, summary: RunSummary) -> "RunReport":
        return cls(
            status=summary.status,
            time_taken_seconds=summary.time_taken_seconds,
            tools_used=tuple(summary.tools_used),
            tests_passed=summary.tests_passed,
            tests_failed=summary.tests_failed,
            failures=tuple(FailureRecord.from_result(r) for r in summary.failures),
            recommendations=tuple(summary.recommendations),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "status": self.status.value,
            "time_taken_seconds": self.time_taken_seconds,
            "tools_used": [t.to_dict() for t in self.tools_used],
            "tests_passed": self.tests_passed,
            "tests_failed": self.tests_failed,
            "failures": [f.to_dict() for f in self.failures],
            "recommendations": list(self.recommendations),
        }
        validate_run_report(payload)
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunReport":
        validate_run_report(data)
        return cls(
            status=RunStatus(data["status"]),
            time_taken_seconds=data["time_taken_seconds"],
            tools_used=tuple(ToolInfo.from_dict(t) for t in data["tools_used"]),
            tests_passed=int(data["tests_passed"]),
            tests_failed=int(data["tests_failed"]),
            failures=tuple(FailureRecord.from_dict(f) for f in data["failures"]),
            recommendations=tuple(str(r) for r in data["recommendations"]),
        )


def serialize_report(report: RunReport) -> str:
    return json.dumps(report.to_dict(), indent=2, sort_keys=True) + "\n"


def deserialize_report(text: str) -> RunReport:
    """Parse and validate a serialized report.

    Raises:
        ValueError: invalid JSON or a payload that does not match the schema.
    """
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Run report is not valid JSON: {e}")
    if not isinstance(payload, dict):
        raise ValueError("Run report must be a JSON object")
    return RunReport.from_dict(payload)


def write_report(report: RunReport, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(serialize_report(report), encoding="utf-8")
    return path


def read_report(path: Path) -> RunReport:
    return deserialize_report(path.read_text(encoding="utf-8"))
