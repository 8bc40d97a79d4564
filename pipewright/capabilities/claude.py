"""
Claude Codegen Capability
=========================
Generate a source file with Claude as a pipeline stage.

The prompt template is formatted with the stage inputs, the reply's first
fenced code block (or the whole reply when there is none) is written to the
output path, and the prompt/response pair is returned as captured output so it
lands in the stage artifact.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Union

from loguru import logger

from pipewright.capabilities.base import Capability, InvocationRequest, InvocationResult, ToolInfo
from pipewright.llm.claude_client import MODELS, ClaudeClient, ModelTier, TaskType, get_claude_client, resolve_tier

ClientFactory = Callable[[], ClaudeClient]

_CODE_BLOCK_RE = re.compile(r"```[A-Za-z0-9_+.-]*[ \t]*\n(.*?)```", re.DOTALL)

DEFAULT_CODEGEN_SYSTEM = (
    "You are a code generator inside an automated build pipeline. "
    "Reply with exactly one fenced code block containing the complete file. "
    "Do not add commentary outside the code block."
)


def extract_code_block(text: str) -> str:
    """Return the first fenced code block, or the stripped text when there is none."""
    match = _CODE_BLOCK_RE.search(text)
    if match:
        return match.group(1)
    return text.strip() + "\n" if text.strip() else ""


class ClaudeCodegenCapability(Capability):
    """Ask Claude for a file and write it to the workspace."""

    def __init__(
        self,
        prompt_template: str,
        *,
        output_key: str,
        output_path: str,
        cwd: Optional[Path] = None,
        model: Union[ModelTier, str] = ModelTier.SONNET,
        system: Optional[str] = None,
        max_tokens: int = 16384,
        client_factory: Optional[ClientFactory] = None,
    ):
        if not prompt_template.strip():
            raise ValueError("prompt_template must not be empty")
        self.prompt_template = prompt_template
        self.output_key = output_key
        self.output_path = output_path
        self.cwd = Path(cwd).expanduser().resolve() if cwd is not None else None
        self.model = resolve_tier(model)
        self.system = system or DEFAULT_CODEGEN_SYSTEM
        self.max_tokens = max_tokens
        self._client_factory = client_factory or (lambda: get_claude_client(model=self.model))
        self._client: Optional[ClaudeClient] = None

    def _get_client(self) -> ClaudeClient:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    def render_prompt(self, inputs: Mapping[str, Any]) -> str:
        try:
            return self.prompt_template.format_map(dict(inputs))
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"Cannot render prompt template: {type(e).__name__}: {e}")

    async def invoke(self, request: InvocationRequest) -> InvocationResult:
        prompt = self.render_prompt(request.inputs)
        client = self._get_client()

        reply = await client.chat_async(
            messages=[{"role": "user", "content": prompt}],
            system=self.system,
            model=self.model,
            task=TaskType.CODE_GENERATION,
            max_tokens=self.max_tokens,
        )

        transcript = f"=== prompt ===\n{prompt}\n=== response ===\n{reply}\n"
        code = extract_code_block(reply)
        if not code.strip():
            return InvocationResult(exit_code=1, stdout=transcript, stderr="Model returned no code")

        workdir = self.cwd if self.cwd is not None else Path.cwd()
        target = (workdir / self.output_path).resolve()
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(code, encoding="utf-8")
        logger.info("Stage '{}' wrote {} ({} chars)", request.stage, target, len(code))

        return InvocationResult(
            exit_code=0,
            stdout=transcript,
            outputs={self.output_key: str(target)},
        )

    async def describe_tool(self) -> ToolInfo:
        return ToolInfo(name="claude", version=MODELS[self.model].id)
