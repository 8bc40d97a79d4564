"""Pipeline runner, stage model and run reporting.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from pipewright.pipeline.errors import (
    ConfigurationError,
    ContextKeyConflict,
    MissingInputError,
    PipelineError,
    RunCancelled,
    StageFailure,
    TimeoutFailure,
)
from pipewright.pipeline.policy import RunnerPolicy
from pipewright.pipeline.stage import Stage, StageResult, StageStatus
from pipewright.pipeline.summary import RunStatus, RunSummary, exit_code_for
from pipewright.pipeline.report import RunReport, deserialize_report, serialize_report
from pipewright.pipeline.runner import PipelineRunner, run_pipeline_from_config

__all__ = [
    "ConfigurationError",
    "ContextKeyConflict",
    "MissingInputError",
    "PipelineError",
    "PipelineRunner",
    "RunCancelled",
    "RunReport",
    "RunStatus",
    "RunSummary",
    "RunnerPolicy",
    "Stage",
    "StageFailure",
    "StageResult",
    "StageStatus",
    "TimeoutFailure",
    "deserialize_report",
    "exit_code_for",
    "run_pipeline_from_config",
    "serialize_report",
]
