"""
Shared test fixtures for pipewright.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

import asyncio
import sys
from pathlib import Path
from typing import List

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from pipewright.capabilities.base import Capability, InvocationRequest, InvocationResult, ToolInfo
from pipewright.pipeline.remediation import RemediationOutcome, Remediator
from pipewright.pipeline.stage import Stage, StageResult


class ScriptedCapability(Capability):
    """Capability that replays a script of results, one per call.

    Script items may be an InvocationResult, an exception instance (raised), or
    a callable taking the request. The last item repeats once the script runs out.
    """

    def __init__(self, *script, tool: ToolInfo = None, delay: float = 0.0):
        self.script = list(script) or [InvocationResult()]
        self.tool = tool or ToolInfo(name="scripted", version="1.0")
        self.delay = delay
        self.calls: List[InvocationRequest] = []

    async def invoke(self, request: InvocationRequest) -> InvocationResult:
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(request)
        return item

    async def describe_tool(self) -> ToolInfo:
        return self.tool


class RecordingRemediator(Remediator):
    """Remediator that returns queued outcomes and records what it saw."""

    def __init__(self, *outcomes: RemediationOutcome):
        self.outcomes = list(outcomes) or [RemediationOutcome(applied=True, recommendation="fixed")]
        self.calls: List[tuple] = []

    async def remediate(self, stage: Stage, failure: StageResult) -> RemediationOutcome:
        self.calls.append((stage, failure))
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]


@pytest.fixture
def scripted():
    """Factory for ScriptedCapability."""
    return ScriptedCapability


@pytest.fixture
def recording_remediator():
    """Factory for RecordingRemediator."""
    return RecordingRemediator


@pytest.fixture
def ok():
    """Build a successful InvocationResult."""

    def _ok(outputs=None, **kwargs) -> InvocationResult:
        return InvocationResult(exit_code=0, outputs=dict(outputs or {}), **kwargs)

    return _ok


@pytest.fixture
def fail():
    """Build a failed InvocationResult."""

    def _fail(exit_code: int = 1, stderr: str = "boom", **kwargs) -> InvocationResult:
        return InvocationResult(exit_code=exit_code, stderr=stderr, **kwargs)

    return _fail


@pytest.fixture
def workspace(tmp_path):
    """Temporary working directory for command stages."""
    ws = tmp_path / "workspace"
    ws.mkdir()
    return ws
