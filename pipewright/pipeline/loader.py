"""Pipeline configuration loader.

Turns a static JSON pipeline description into Stage objects, a runner policy
and a default remediator. The document is validated against
schemas/pipeline_config.schema.json and the resulting stage graph is checked
with validate_stages, so a bad config fails before anything runs.

Example:

    {
      "name": "codegen-ci",
      "workdir": "..",
      "retry_budget": 1,
      "remediation": {"kind": "claude", "fix": {"kind": "command", "argv": ["ruff", "check", "--fix", "."]}},
      "stages": [
        {"name": "generate", "kind": "claude", "prompt": "...", "outputs": {"app_module": "app/main.py"}},
        {"name": "test", "kind": "pytest", "inputs": ["app_module"], "remediable": true}
      ]
    }

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pipewright.capabilities.base import Capability
from pipewright.capabilities.claude import ClaudeCodegenCapability
from pipewright.capabilities.command import CommandCapability, LinterCapability, TestRunnerCapability
from pipewright.config import RUNNER, TIMEOUTS, TRIAGE
from pipewright.llm.claude_client import ClaudeClient
from pipewright.pipeline.errors import ConfigurationError
from pipewright.pipeline.policy import RunnerPolicy
from pipewright.pipeline.remediation import ClaudeTriageRemediator, CommandRemediator, NullRemediator, Remediator
from pipewright.pipeline.stage import Stage
from pipewright.pipeline.validation import validate_stages
from pipewright.utils.schema_validation import validate_pipeline_config

ClientFactory = Callable[[], ClaudeClient]


@dataclass(frozen=True)
class PipelineDefinition:
    """A loaded, validated pipeline ready to hand to PipelineRunner."""

    name: str
    workdir: Path
    stages: List[Stage]
    policy: RunnerPolicy
    remediator: Remediator
    config_path: Optional[Path] = None


def build_remediator(
    spec: Optional[Dict[str, Any]],
    *,
    workdir: Path,
    client_factory: Optional[ClientFactory] = None,
) -> Optional[Remediator]:
    if spec is None:
        return None

    kind = spec.get("kind")
    if kind == "none":
        return NullRemediator()
    if kind == "command":
        argv = spec.get("argv")
        if not argv:
            raise ConfigurationError("Command remediation requires 'argv'")
        return CommandRemediator(argv, cwd=workdir)
    if kind == "claude":
        fix = build_remediator(spec.get("fix"), workdir=workdir, client_factory=client_factory)
        return ClaudeTriageRemediator(
            fix=fix,
            model=spec.get("model", TRIAGE.MODEL),
            client_factory=client_factory,
        )
    raise ConfigurationError(f"Unknown remediation kind: {kind!r}")


def _build_capability(
    spec: Dict[str, Any],
    *,
    workdir: Path,
    client_factory: Optional[ClientFactory],
) -> Capability:
    name = spec["name"]
    kind = spec["kind"]
    outputs: Dict[str, str] = dict(spec.get("outputs") or {})

    if kind in ("command", "pytest", "lint"):
        argv = spec.get("argv")
        kwargs: Dict[str, Any] = {
            "cwd": workdir,
            "output_paths": outputs,
            "sanitize_env": bool(spec.get("sanitize_env", True)),
        }
        if spec.get("tool"):
            kwargs["tool_name"] = spec["tool"]
        if spec.get("version_argv"):
            kwargs["version_argv"] = spec["version_argv"]

        if kind == "pytest":
            return TestRunnerCapability(argv, **kwargs)
        if kind == "lint":
            return LinterCapability(argv, **kwargs)
        if not argv:
            raise ConfigurationError(f"Stage '{name}': kind 'command' requires 'argv'")
        return CommandCapability(argv, **kwargs)

    if kind == "claude":
        prompt = spec.get("prompt")
        if not prompt:
            raise ConfigurationError(f"Stage '{name}': kind 'claude' requires 'prompt'")
        if len(outputs) != 1:
            raise ConfigurationError(f"Stage '{name}': kind 'claude' must declare exactly one output")
        ((output_key, output_path),) = outputs.items()
        return ClaudeCodegenCapability(
            prompt,
            output_key=output_key,
            output_path=output_path,
            cwd=workdir,
            model=spec.get("model", "sonnet"),
            system=spec.get("system"),
            client_factory=client_factory,
        )

    raise ConfigurationError(f"Stage '{name}': unknown kind {kind!r}")


def build_stage(
    spec: Dict[str, Any],
    *,
    workdir: Path,
    client_factory: Optional[ClientFactory] = None,
) -> Stage:
    capability = _build_capability(spec, workdir=workdir, client_factory=client_factory)
    remediator = build_remediator(spec.get("remediation"), workdir=workdir, client_factory=client_factory)

    return Stage(
        name=spec["name"],
        capability=capability,
        inputs=tuple(spec.get("inputs") or ()),
        outputs=tuple((spec.get("outputs") or {}).keys()),
        remediable=bool(spec.get("remediable", remediator is not None)),
        required=bool(spec.get("required", True)),
        timeout_seconds=spec.get("timeout_seconds"),
        remediator=remediator,
    )


def build_pipeline(
    payload: Any,
    *,
    base_dir: Path,
    config_path: Optional[Path] = None,
    client_factory: Optional[ClientFactory] = None,
) -> PipelineDefinition:
    """Build a PipelineDefinition from an already-parsed config document.

    Raises:
        ConfigurationError: schema violations or an invalid stage graph.
    """
    if not isinstance(payload, dict):
        raise ConfigurationError("Pipeline config must be a JSON object")

    try:
        validate_pipeline_config(payload)
    except ValueError as e:
        raise ConfigurationError(f"Invalid pipeline config: {e}")

    workdir = (Path(base_dir) / payload.get("workdir", ".")).expanduser().resolve()

    policy = RunnerPolicy(
        retry_budget=int(payload.get("retry_budget", RUNNER.RETRY_BUDGET)),
        default_timeout_seconds=float(payload.get("default_timeout_seconds", TIMEOUTS.STAGE_DEFAULT)),
    )
    remediator = build_remediator(payload.get("remediation"), workdir=workdir, client_factory=client_factory)

    stages = [build_stage(s, workdir=workdir, client_factory=client_factory) for s in payload["stages"]]
    stages = validate_stages(stages)

    return PipelineDefinition(
        name=str(payload.get("name") or (config_path.stem if config_path else "pipeline")),
        workdir=workdir,
        stages=stages,
        policy=policy,
        remediator=remediator or NullRemediator(),
        config_path=config_path,
    )


def load_pipeline_config(
    path: str | Path,
    *,
    client_factory: Optional[ClientFactory] = None,
) -> PipelineDefinition:
    """Read and build a pipeline config file; `workdir` is relative to the file."""
    config_path = Path(path).expanduser().resolve()
    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to read pipeline config {config_path}: {type(e).__name__}: {e}")

    return build_pipeline(
        payload,
        base_dir=config_path.parent,
        config_path=config_path,
        client_factory=client_factory,
    )
