"""
Command Capabilities
====================
Run an external CLI (test runner, linter, container engine) as a stage.

Commands run in their own process group with a minimal environment. Stage
inputs are available both as `{key}` placeholders in argv and as
PIPEWRIGHT_INPUT_<KEY> environment variables. When the runner cancels an
invocation (timeout or interrupt) the whole process group is killed.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import asyncio
import os
import re
import signal
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from pipewright.capabilities.base import Capability, InvocationRequest, InvocationResult, ToolInfo
from pipewright.config import TIMEOUTS
from pipewright.utils.subprocess_env import build_minimal_subprocess_env, inputs_to_env
from pipewright.utils.text import first_line, to_text


def _terminate(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (AttributeError, ProcessLookupError, PermissionError):
        try:
            proc.kill()
        except ProcessLookupError:
            pass


async def run_command(
    argv: Sequence[str],
    *,
    cwd: Path,
    env: Dict[str, str],
    timeout_seconds: Optional[float] = None,
) -> Tuple[int, str, str]:
    """Run argv to completion and return (returncode, stdout, stderr).

    Missing executables are reported as exit code 127, permission problems as
    126, matching shell conventions. Cancellation and timeouts kill the
    process group before propagating.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd),
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )
    except FileNotFoundError:
        return 127, "", f"Executable not found: {argv[0]}"
    except PermissionError:
        return 126, "", f"Executable not permitted: {argv[0]}"

    try:
        if timeout_seconds is None:
            stdout_b, stderr_b = await proc.communicate()
        else:
            stdout_b, stderr_b = await asyncio.wait_for(proc.communicate(), timeout_seconds)
    except (asyncio.CancelledError, asyncio.TimeoutError):
        _terminate(proc)
        await proc.wait()
        raise

    return int(proc.returncode or 0), to_text(stdout_b), to_text(stderr_b)


class CommandCapability(Capability):
    """Invoke a CLI tool once per stage attempt."""

    def __init__(
        self,
        argv: Sequence[str],
        *,
        tool_name: Optional[str] = None,
        version_argv: Optional[Sequence[str]] = None,
        cwd: Optional[Path] = None,
        output_paths: Optional[Mapping[str, str]] = None,
        sanitize_env: bool = True,
        env: Optional[Mapping[str, str]] = None,
    ):
        if not argv:
            raise ValueError("argv must not be empty")
        self.argv: List[str] = [str(a) for a in argv]
        self.tool_name = tool_name or Path(self.argv[0]).name
        self.version_argv: Optional[List[str]] = [str(a) for a in version_argv] if version_argv else None
        self.cwd = Path(cwd).expanduser().resolve() if cwd is not None else None
        self.output_paths: Dict[str, str] = dict(output_paths or {})
        self.sanitize_env = sanitize_env
        self.env: Dict[str, str] = dict(env or {})
        self._tool_info: Optional[ToolInfo] = None

    def _workdir(self) -> Path:
        return self.cwd if self.cwd is not None else Path.cwd()

    def render_argv(self, inputs: Mapping[str, Any]) -> List[str]:
        """Substitute `{key}` placeholders with resolved input values."""
        rendered: List[str] = []
        for arg in self.argv:
            if "{" not in arg:
                rendered.append(arg)
                continue
            try:
                rendered.append(arg.format_map(dict(inputs)))
            except (KeyError, IndexError, ValueError) as e:
                raise ValueError(f"Cannot render argument {arg!r}: {type(e).__name__}: {e}")
        return rendered

    def collect_outputs(self, workdir: Path) -> Dict[str, Any]:
        """Map declared output files that exist after the run to context values."""
        outputs: Dict[str, Any] = {}
        for key, relpath in self.output_paths.items():
            path = (workdir / relpath).resolve()
            if path.exists():
                outputs[key] = str(path)
            else:
                logger.debug("Declared output '{}' not found at {}", key, path)
        return outputs

    async def invoke(self, request: InvocationRequest) -> InvocationResult:
        argv = self.render_argv(request.inputs)
        workdir = self._workdir()

        extra = inputs_to_env(request.inputs)
        extra.update(self.env)
        extra.update(
            {
                "PIPEWRIGHT_STAGE": request.stage,
                "PIPEWRIGHT_RUN_ID": request.run_id,
                "PIPEWRIGHT_ATTEMPT": str(request.attempt),
            }
        )
        env = build_minimal_subprocess_env(sanitize_env=self.sanitize_env, extra=extra)

        logger.debug("Stage '{}' running {} in {}", request.stage, argv, workdir)
        returncode, stdout, stderr = await run_command(argv, cwd=workdir, env=env)

        result = InvocationResult(exit_code=returncode, stdout=stdout, stderr=stderr)
        if result.success:
            result.outputs = self.collect_outputs(workdir)
        return result

    async def describe_tool(self) -> ToolInfo:
        if self._tool_info is not None:
            return self._tool_info

        version = "unknown"
        if self.version_argv:
            try:
                rc, out, err = await run_command(
                    self.version_argv,
                    cwd=self._workdir(),
                    env=build_minimal_subprocess_env(sanitize_env=self.sanitize_env),
                    timeout_seconds=TIMEOUTS.VERSION_PROBE,
                )
            except (asyncio.TimeoutError, OSError) as e:
                logger.debug("Version probe for {} failed: {}: {}", self.tool_name, type(e).__name__, e)
            else:
                if rc == 0:
                    version = first_line(out) or first_line(err) or "unknown"

        self._tool_info = ToolInfo(name=self.tool_name, version=version)
        return self._tool_info


_SUMMARY_COUNT_RE = re.compile(r"(\d+) (passed|failed|errors?|xfailed|xpassed|skipped|deselected|warnings?)\b")


def parse_pytest_counts(text: str) -> Tuple[Optional[int], Optional[int]]:
    """Parse the final pytest summary line into (passed, failed).

    Collection errors count as failures. Returns (None, None) when no summary
    line is present.
    """
    for line in reversed(text.splitlines()):
        matches = _SUMMARY_COUNT_RE.findall(line)
        if not matches:
            continue
        counts: Dict[str, int] = {}
        for number, label in matches:
            if label.startswith("error"):
                label = "error"
            counts[label] = counts.get(label, 0) + int(number)
        if not ({"passed", "failed", "error"} & counts.keys()):
            continue
        return counts.get("passed", 0), counts.get("failed", 0) + counts.get("error", 0)
    return None, None


def _default_version_argv(argv: Sequence[str]) -> List[str]:
    if "-m" in argv:
        idx = list(argv).index("-m")
        return list(argv[: idx + 2]) + ["--version"]
    return [argv[0], "--version"]


class TestRunnerCapability(CommandCapability):
    """Run pytest and report pass/fail counters."""

    # Keep pytest from collecting this class.
    __test__ = False

    def __init__(self, argv: Optional[Sequence[str]] = None, **kwargs: Any):
        argv = list(argv) if argv else ["pytest", "-q"]
        kwargs.setdefault("tool_name", "pytest")
        kwargs.setdefault("version_argv", _default_version_argv(argv))
        super().__init__(argv, **kwargs)

    async def invoke(self, request: InvocationRequest) -> InvocationResult:
        result = await super().invoke(request)
        passed, failed = parse_pytest_counts(result.stdout + "\n" + result.stderr)
        result.tests_passed = passed
        result.tests_failed = failed
        return result


class LinterCapability(CommandCapability):
    """Run a linter; a nonzero exit means findings or a crash."""

    def __init__(self, argv: Optional[Sequence[str]] = None, **kwargs: Any):
        argv = list(argv) if argv else ["ruff", "check", "."]
        kwargs.setdefault("version_argv", _default_version_argv(argv))
        super().__init__(argv, **kwargs)
