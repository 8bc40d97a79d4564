"""Stage capabilities: one interface, one variant per kind of external tool.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from pipewright.capabilities.base import (
    CallableCapability,
    Capability,
    InvocationRequest,
    InvocationResult,
    ToolInfo,
)
from pipewright.capabilities.command import (
    CommandCapability,
    LinterCapability,
    TestRunnerCapability,
    parse_pytest_counts,
)

__all__ = [
    "CallableCapability",
    "Capability",
    "CommandCapability",
    "InvocationRequest",
    "InvocationResult",
    "LinterCapability",
    "TestRunnerCapability",
    "ToolInfo",
    "parse_pytest_counts",
]
