"""
Capability Interface
====================
Every stage calls exactly one external collaborator through this interface:
`invoke(request) -> InvocationResult`. The runner never inspects tool-specific
semantics beyond the exit code, the captured text and the declared outputs.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import asyncio
import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Union


@dataclass(frozen=True)
class ToolInfo:
    """Name and version of the tool behind a stage."""

    name: str
    version: str = "unknown"

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "version": self.version}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolInfo":
        return cls(name=str(data["name"]), version=str(data.get("version", "unknown")))


@dataclass(frozen=True)
class InvocationRequest:
    """What a capability receives for one stage attempt."""

    stage: str
    run_id: str
    attempt: int
    started_at: str
    inputs: Dict[str, Any] = field(default_factory=dict)


@dataclass
class InvocationResult:
    """Raw outcome of one capability call.

    `outputs` maps context keys to produced values (usually artifact paths).
    Test runners report `tests_passed`/`tests_failed`; other tools leave them None.
    """

    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""
    outputs: Dict[str, Any] = field(default_factory=dict)
    tests_passed: Optional[int] = None
    tests_failed: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class Capability(ABC):
    """One external tool, invoked as a black box."""

    @abstractmethod
    async def invoke(self, request: InvocationRequest) -> InvocationResult:
        """Run the tool once for a stage attempt."""

    async def describe_tool(self) -> ToolInfo:
        """Report the tool name and version for the run inventory."""
        return ToolInfo(name=type(self).__name__)


CallableReturn = Union[InvocationResult, Dict[str, Any], None]


class CallableCapability(Capability):
    """Adapt a plain Python callable (sync or async) into a capability.

    The callable receives the InvocationRequest. A returned dict is taken as
    the stage outputs of a successful call; None means success with no outputs;
    raised exceptions become stage failures in the runner.
    """

    def __init__(
        self,
        func: Callable[[InvocationRequest], Union[CallableReturn, Awaitable[CallableReturn]]],
        *,
        tool: Optional[ToolInfo] = None,
    ):
        self.func = func
        self.tool = tool or ToolInfo(name=getattr(func, "__name__", "callable"))

    async def invoke(self, request: InvocationRequest) -> InvocationResult:
        # Sync callables run off the event loop thread.
        if inspect.iscoroutinefunction(self.func):
            value = await self.func(request)
        else:
            value = await asyncio.to_thread(self.func, request)
            if inspect.isawaitable(value):
                value = await value

        if isinstance(value, InvocationResult):
            return value
        if value is None:
            return InvocationResult()
        if isinstance(value, dict):
            return InvocationResult(outputs=dict(value))
        raise TypeError(
            f"Callable capability returned {type(value).__name__}; expected InvocationResult, dict or None"
        )

    async def describe_tool(self) -> ToolInfo:
        return self.tool
