"""
Failure Remediation
===================
The remediation sub-step the runner calls once per failure of a remediable
stage. A remediator receives the failed stage and its StageResult (with the
truncated diagnostic) and returns whether a fix was applied, plus a
human-readable recommendation the runner always records.

Remediators:
- NullRemediator: never fixes anything; asks for manual review
- CommandRemediator: runs a fix command (e.g. `ruff check --fix .`)
- ClaudeTriageRemediator: asks Claude whether the failure is actionable and
  delegates to a fix remediator when it is

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import json
import re
import shlex
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

from loguru import logger

from pipewright.capabilities.command import run_command
from pipewright.config import ARTIFACTS, TRIAGE
from pipewright.llm.claude_client import ClaudeClient, ModelTier, TaskType, get_claude_client, resolve_tier
from pipewright.pipeline.stage import Stage, StageResult
from pipewright.utils.subprocess_env import build_minimal_subprocess_env
from pipewright.utils.text import first_line, truncate_head_tail


@dataclass(frozen=True)
class RemediationOutcome:
    """Result of one remediation attempt."""

    applied: bool
    recommendation: str
    action: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "applied": self.applied,
            "recommendation": self.recommendation,
            "action": self.action,
        }


class Remediator(ABC):
    """Triage a failed stage and optionally apply a fix."""

    @abstractmethod
    async def remediate(self, stage: Stage, failure: StageResult) -> RemediationOutcome:
        """Return whether a fix was applied and what a human should know."""


class NullRemediator(Remediator):
    """No automated remediation; the recommendation asks for manual review."""

    async def remediate(self, stage: Stage, failure: StageResult) -> RemediationOutcome:
        reason = failure.error or "unknown error"
        return RemediationOutcome(
            applied=False,
            recommendation=(
                f"Stage '{stage.name}' failed ({reason}); no automated fix is configured. "
                "Review the stage artifact and fix manually."
            ),
        )


class CommandRemediator(Remediator):
    """Run a fix command; the fix counts as applied when it exits 0.

    The failed stage name and its artifact key are exported as
    PIPEWRIGHT_FAILED_STAGE and PIPEWRIGHT_FAILED_ARTIFACT.
    """

    def __init__(
        self,
        argv: Sequence[str],
        *,
        cwd: Optional[Path] = None,
        sanitize_env: bool = True,
        timeout_seconds: Optional[float] = None,
    ):
        if not argv:
            raise ValueError("argv must not be empty")
        self.argv = [str(a) for a in argv]
        self.cwd = Path(cwd).expanduser().resolve() if cwd is not None else None
        self.sanitize_env = sanitize_env
        self.timeout_seconds = timeout_seconds

    @property
    def action(self) -> str:
        return " ".join(shlex.quote(a) for a in self.argv)

    async def remediate(self, stage: Stage, failure: StageResult) -> RemediationOutcome:
        env = build_minimal_subprocess_env(
            sanitize_env=self.sanitize_env,
            extra={
                "PIPEWRIGHT_FAILED_STAGE": stage.name,
                "PIPEWRIGHT_FAILED_ARTIFACT": failure.artifact_key or "",
            },
        )
        workdir = self.cwd if self.cwd is not None else Path.cwd()

        logger.info("Remediating stage '{}' with `{}`", stage.name, self.action)
        rc, out, err = await run_command(self.argv, cwd=workdir, env=env, timeout_seconds=self.timeout_seconds)

        if rc == 0:
            return RemediationOutcome(
                applied=True,
                recommendation=f"Applied `{self.action}` after stage '{stage.name}' failed; the stage was retried.",
                action=self.action,
            )

        detail = first_line(err) or first_line(out) or "no output"
        return RemediationOutcome(
            applied=False,
            recommendation=(
                f"Remediation `{self.action}` for stage '{stage.name}' exited {rc} ({detail}); "
                "manual review required."
            ),
            action=self.action,
        )


TRIAGE_SYSTEM_PROMPT = """You triage failures in an automated build pipeline.

Given a failed stage and its captured output, decide whether the failure has a
safe automated fix (formatting, lint autofix, regenerating a file, clearing a
cache) or needs a human.

Reply with one JSON object and nothing else:
{"actionable": true|false, "action": "<short fix description or null>", "recommendation": "<one or two sentences for the run report>"}
"""


@dataclass(frozen=True)
class TriageVerdict:
    actionable: bool
    action: Optional[str]
    recommendation: str


_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*\n(.*?)```", re.DOTALL)
_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def parse_triage_verdict(text: str) -> Optional[TriageVerdict]:
    """Parse the model's JSON verdict; None when no usable object is found."""
    candidates = [m.group(1) for m in _FENCED_JSON_RE.finditer(text)]
    match = _JSON_OBJECT_RE.search(text)
    if match:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if not isinstance(payload, dict):
            continue
        actionable = payload.get("actionable")
        recommendation = payload.get("recommendation")
        if not isinstance(actionable, bool) or not isinstance(recommendation, str) or not recommendation.strip():
            continue
        action = payload.get("action")
        return TriageVerdict(
            actionable=actionable,
            action=action.strip() if isinstance(action, str) and action.strip() else None,
            recommendation=recommendation.strip(),
        )
    return None


def build_triage_prompt(stage: Stage, failure: StageResult, max_chars: int) -> str:
    diagnostic = truncate_head_tail(failure.diagnostic or "", max_chars)
    tool = f"{failure.tool.name} {failure.tool.version}" if failure.tool else "unknown"
    return (
        f"Stage: {stage.name}\n"
        f"Tool: {tool}\n"
        f"Attempt: {failure.attempt}\n"
        f"Exit code: {failure.exit_code}\n"
        f"Error type: {failure.error_type}\n"
        f"Error: {failure.error}\n\n"
        f"Captured output:\n{diagnostic}\n"
    )


class ClaudeTriageRemediator(Remediator):
    """Let Claude classify the failure; apply `fix` when it is actionable."""

    def __init__(
        self,
        *,
        fix: Optional[Remediator] = None,
        model: Union[ModelTier, str] = TRIAGE.MODEL,
        max_diagnostic_chars: int = ARTIFACTS.MAX_DIAGNOSTIC_CHARS,
        max_tokens: int = TRIAGE.MAX_TOKENS,
        client_factory=None,
    ):
        self.fix = fix
        self.model = resolve_tier(model)
        self.max_diagnostic_chars = max_diagnostic_chars
        self.max_tokens = max_tokens
        self._client_factory = client_factory or (lambda: get_claude_client(model=self.model))
        self._client: Optional[ClaudeClient] = None

    def _get_client(self) -> ClaudeClient:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    async def remediate(self, stage: Stage, failure: StageResult) -> RemediationOutcome:
        prompt = build_triage_prompt(stage, failure, self.max_diagnostic_chars)
        reply = await self._get_client().chat_async(
            messages=[{"role": "user", "content": prompt}],
            system=TRIAGE_SYSTEM_PROMPT,
            model=self.model,
            task=TaskType.FAILURE_TRIAGE,
            max_tokens=self.max_tokens,
            temperature=0.0,
        )

        verdict = parse_triage_verdict(reply)
        if verdict is None:
            logger.warning("Unparseable triage verdict for stage '{}'", stage.name)
            return RemediationOutcome(
                applied=False,
                recommendation=(
                    f"Triage for stage '{stage.name}' returned no usable verdict: "
                    f"{truncate_head_tail(reply.strip(), 500)}"
                ),
            )

        logger.info(
            "Triage verdict for stage '{}': actionable={} action={}",
            stage.name,
            verdict.actionable,
            verdict.action,
        )

        if not verdict.actionable or self.fix is None:
            return RemediationOutcome(applied=False, recommendation=verdict.recommendation, action=verdict.action)

        fix_outcome = await self.fix.remediate(stage, failure)
        return RemediationOutcome(
            applied=fix_outcome.applied,
            recommendation=f"{verdict.recommendation} {fix_outcome.recommendation}",
            action=fix_outcome.action or verdict.action,
        )
