"""Stage definitions and per-attempt results.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from pipewright.capabilities.base import Capability, ToolInfo

if TYPE_CHECKING:
    from pipewright.pipeline.remediation import Remediator


class StageStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Stage:
    """One pipeline step backed by a single capability.

    `inputs` are context keys produced by earlier stages; `outputs` are the
    keys this stage writes on success. A `required` stage that ends in failure
    aborts the rest of the run. `remediable` stages get one remediation round
    (plus retry) per failure, bounded by the runner's retry budget.
    """

    name: str
    capability: Capability
    inputs: Tuple[str, ...] = ()
    outputs: Tuple[str, ...] = ()
    remediable: bool = False
    required: bool = True
    timeout_seconds: Optional[float] = None
    remediator: Optional["Remediator"] = None
    ordinal: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "inputs", tuple(self.inputs))
        object.__setattr__(self, "outputs", tuple(self.outputs))


@dataclass(frozen=True)
class StageResult:
    """Record of one stage attempt (or of a skipped stage)."""

    stage: str
    ordinal: int
    status: StageStatus
    attempt: int = 1
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    duration_seconds: float = 0.0
    exit_code: Optional[int] = None
    error_type: Optional[str] = None
    error: Optional[str] = None
    diagnostic: str = ""
    artifact_key: Optional[str] = None
    tool: Optional[ToolInfo] = None
    tests_passed: Optional[int] = None
    tests_failed: Optional[int] = None
    outputs: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status is StageStatus.SUCCESS

    @property
    def failed(self) -> bool:
        return self.status is StageStatus.FAILURE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "ordinal": self.ordinal,
            "status": self.status.value,
            "attempt": self.attempt,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "duration_seconds": self.duration_seconds,
            "exit_code": self.exit_code,
            "error_type": self.error_type,
            "error": self.error,
            "diagnostic": self.diagnostic,
            "artifact_key": self.artifact_key,
            "tool": self.tool.to_dict() if self.tool else None,
            "tests_passed": self.tests_passed,
            "tests_failed": self.tests_failed,
            "outputs": dict(self.outputs),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StageResult":
        tool = data.get("tool")
        return cls(
            stage=data["stage"],
            ordinal=int(data["ordinal"]),
            status=StageStatus(data["status"]),
            attempt=int(data.get("attempt", 1)),
            started_at=data.get("started_at"),
            finished_at=data.get("finished_at"),
            duration_seconds=float(data.get("duration_seconds", 0.0)),
            exit_code=data.get("exit_code"),
            error_type=data.get("error_type"),
            error=data.get("error"),
            diagnostic=data.get("diagnostic", ""),
            artifact_key=data.get("artifact_key"),
            tool=ToolInfo.from_dict(tool) if isinstance(tool, dict) else None,
            tests_passed=data.get("tests_passed"),
            tests_failed=data.get("tests_failed"),
            outputs=dict(data.get("outputs") or {}),
        )
