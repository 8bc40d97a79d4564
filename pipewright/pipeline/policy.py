"""Runner policy knobs.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pipewright.config import ARTIFACTS, RUNNER, TIMEOUTS


@dataclass(frozen=True)
class RunnerPolicy:
    """Retry, timeout and capture limits applied to every stage of a run.

    retry_budget bounds the remediation + retry rounds per failed remediable
    stage (1 by default). A None timeout disables the limit.
    """

    retry_budget: int = RUNNER.RETRY_BUDGET
    default_timeout_seconds: Optional[float] = float(TIMEOUTS.STAGE_DEFAULT)
    remediation_timeout_seconds: Optional[float] = float(TIMEOUTS.REMEDIATION)
    max_diagnostic_chars: int = ARTIFACTS.MAX_DIAGNOSTIC_CHARS
    max_artifact_chars: int = ARTIFACTS.MAX_ARTIFACT_CHARS

    def __post_init__(self) -> None:
        if self.retry_budget < 0:
            raise ValueError("retry_budget must be >= 0")
