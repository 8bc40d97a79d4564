#!/usr/bin/env python3
"""Run a pipeline described by a static JSON configuration.

It writes:
- <artifacts>/run_report.json (fixed report schema)
- <artifacts>/run_summary.json (full stage history)
- per-stage captured output under <artifacts>/stages/

Exit code behavior:
- 0 when the run status is success or partial
- 1 when the run status is failed (including interrupted runs)
- 2 for configuration errors (nothing was run)

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from pathlib import Path


ROOT_DIR = Path(__file__).resolve().parents[1]
root_str = str(ROOT_DIR)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from loguru import logger  # noqa: E402
from rich import print as rprint  # noqa: E402
from rich.table import Table  # noqa: E402

from pipewright.llm.claude_client import load_env_file_lenient  # noqa: E402

load_env_file_lenient()

from pipewright.pipeline import ConfigurationError, RunSummary, exit_code_for, run_pipeline_from_config  # noqa: E402
from pipewright.pipeline.runner import PipelineRunner  # noqa: E402


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a pipewright pipeline")
    parser.add_argument("config", help="Path to the pipeline configuration JSON")
    parser.add_argument(
        "--artifacts-dir",
        default=None,
        help="Artifact root (default: <workdir>/artifacts)",
    )
    parser.add_argument(
        "--report",
        default=None,
        help="Report path (default: <artifacts-dir>/run_report.json)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console log level",
    )
    return parser.parse_args()


def _install_signal_handlers(runner: PipelineRunner) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runner.request_cancel)
        except (NotImplementedError, RuntimeError):
            # Windows event loops do not support add_signal_handler.
            logger.debug("Signal handler for {} not installed", sig)


def _print_summary(summary: RunSummary, report_path: Path) -> None:
    table = Table(title=f"Pipeline run {summary.run_id}")
    table.add_column("#", style="dim")
    table.add_column("Stage", style="cyan")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Tool", style="dim")
    table.add_column("Error", style="red")

    attempts = {}
    for r in summary.history:
        attempts[r.stage] = max(attempts.get(r.stage, 0), r.attempt)

    colors = {"success": "green", "failure": "red", "skipped": "yellow"}
    for r in summary.stage_results:
        tool = f"{r.tool.name} {r.tool.version}" if r.tool else ""
        table.add_row(
            str(r.ordinal),
            r.stage,
            f"[{colors[r.status.value]}]{r.status.value}[/]",
            str(attempts.get(r.stage, 0)) if r.status.value != "skipped" else "-",
            tool,
            r.error or "",
        )
    rprint(table)

    rprint(f"Status: [bold]{summary.status.value}[/bold]  time: {summary.time_taken_seconds:.1f}s  "
           f"tests: {summary.tests_passed} passed / {summary.tests_failed} failed")
    if summary.recommendations:
        rprint("\n[bold]Recommendations:[/bold]")
        for rec in summary.recommendations:
            rprint(f"  - {rec}")
    rprint(f"\nReport: {report_path}")


async def main() -> int:
    args = _parse_args()

    logger.remove()
    logger.add(sys.stderr, level=args.log_level)

    try:
        summary, report_path = await run_pipeline_from_config(
            args.config,
            artifacts_dir=args.artifacts_dir,
            report_path=args.report,
            on_runner=_install_signal_handlers,
        )
    except ConfigurationError as e:
        logger.error("Configuration error: {}", e)
        return 2

    _print_summary(summary, report_path)
    return exit_code_for(summary)


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
