"""Pipeline error taxonomy.

Only ConfigurationError reaches callers of the runner. Every other error is
captured into a StageResult so a run always produces a summary.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

from typing import Iterable, Optional


class PipelineError(Exception):
    """Base class for pipewright errors."""


class ConfigurationError(PipelineError):
    """Invalid stage list or pipeline configuration; raised before any stage runs."""


class MissingInputError(PipelineError):
    """A stage declared an input that is absent from the context."""

    def __init__(self, stage: str, missing: Iterable[str]):
        self.stage = stage
        self.missing = sorted(set(missing))
        super().__init__(
            f"Stage '{stage}' is missing inputs: {', '.join(self.missing)}"
        )


class ContextKeyConflict(PipelineError):
    """A stage tried to overwrite a context key written earlier."""

    def __init__(self, key: str, produced_by: Optional[str], stage: str):
        self.key = key
        self.produced_by = produced_by
        self.stage = stage
        super().__init__(
            f"Context key '{key}' already written by stage '{produced_by}'; "
            f"stage '{stage}' may not overwrite it"
        )


class StageFailure(PipelineError):
    """An external tool reported failure (nonzero exit, exception, bad output)."""

    def __init__(self, stage: str, message: str):
        self.stage = stage
        self.message = message
        super().__init__(message)


class TimeoutFailure(StageFailure):
    """A stage invocation exceeded its timeout."""

    def __init__(self, stage: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(stage, f"timed out after {timeout_seconds:g} seconds")


class RunCancelled(PipelineError):
    """The run was interrupted while a stage was executing."""
