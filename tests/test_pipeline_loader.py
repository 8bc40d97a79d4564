"""
Pipeline Config Loader Tests
============================
Static JSON configs to Stage objects, plus the end-to-end config runner.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

import json
import os
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from pipewright.capabilities.claude import ClaudeCodegenCapability
from pipewright.capabilities.command import CommandCapability, LinterCapability, TestRunnerCapability
from pipewright.pipeline import ConfigurationError, RunStatus, run_pipeline_from_config
from pipewright.pipeline.loader import build_pipeline, build_remediator, load_pipeline_config
from pipewright.pipeline.remediation import ClaudeTriageRemediator, CommandRemediator, NullRemediator
from pipewright.pipeline.report import read_report

SAMPLE_CONFIG = Path(__file__).resolve().parent.parent / "pipelines" / "codegen_ci.json"


def _write_config(tmp_path: Path, payload) -> Path:
    path = tmp_path / "pipeline.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


@pytest.mark.unit
def test_sample_config_loads_without_api_key():
    with patch.dict(os.environ, {}, clear=True):
        definition = load_pipeline_config(SAMPLE_CONFIG)

    assert definition.name == "codegen-ci"
    assert definition.workdir == SAMPLE_CONFIG.parent.parent.resolve()
    assert [s.name for s in definition.stages] == ["generate", "test", "lint", "build"]
    assert [s.ordinal for s in definition.stages] == [1, 2, 3, 4]
    assert isinstance(definition.remediator, NullRemediator)
    assert definition.policy.retry_budget == 1

    generate, test, lint, build = definition.stages
    assert isinstance(generate.capability, ClaudeCodegenCapability)
    assert generate.outputs == ("generated_module",)
    assert isinstance(test.capability, TestRunnerCapability)
    assert test.inputs == ("generated_module",)
    assert isinstance(test.remediator, ClaudeTriageRemediator)
    assert isinstance(test.remediator.fix, CommandRemediator)
    assert isinstance(lint.capability, LinterCapability)
    assert lint.required is False
    assert isinstance(build.capability, CommandCapability)
    assert build.capability.tool_name == "docker"
    assert build.timeout_seconds == 1200


@pytest.mark.unit
def test_workdir_is_relative_to_config_file(tmp_path):
    (tmp_path / "proj").mkdir()
    path = _write_config(tmp_path, {"workdir": "proj", "stages": [{"name": "t", "kind": "pytest"}]})

    definition = load_pipeline_config(path)

    assert definition.workdir == (tmp_path / "proj").resolve()
    assert definition.stages[0].capability.cwd == (tmp_path / "proj").resolve()
    assert definition.name == "pipeline"


@pytest.mark.unit
def test_remediation_spec_implies_remediable(tmp_path):
    path = _write_config(
        tmp_path,
        {
            "stages": [
                {"name": "lint", "kind": "lint", "remediation": {"kind": "command", "argv": ["ruff", "check", "--fix", "."]}},
                {"name": "test", "kind": "pytest"},
            ]
        },
    )

    lint, test = load_pipeline_config(path).stages

    assert lint.remediable is True
    assert test.remediable is False


@pytest.mark.unit
def test_build_remediator_kinds(tmp_path):
    assert build_remediator(None, workdir=tmp_path) is None
    assert isinstance(build_remediator({"kind": "none"}, workdir=tmp_path), NullRemediator)
    assert isinstance(build_remediator({"kind": "command", "argv": ["true"]}, workdir=tmp_path), CommandRemediator)

    with pytest.raises(ConfigurationError):
        build_remediator({"kind": "command"}, workdir=tmp_path)
    with pytest.raises(ConfigurationError):
        build_remediator({"kind": "magic"}, workdir=tmp_path)


@pytest.mark.unit
@pytest.mark.parametrize(
    "payload, message",
    [
        ([], "JSON object"),
        ({"stages": []}, "Invalid pipeline config"),
        ({"stages": [{"name": "b", "kind": "command"}]}, "requires 'argv'"),
        ({"stages": [{"name": "g", "kind": "claude", "outputs": {"m": "m.py"}}]}, "requires 'prompt'"),
        ({"stages": [{"name": "g", "kind": "claude", "prompt": "p"}]}, "exactly one output"),
        ({"stages": [{"name": "t", "kind": "pytest", "inputs": ["nothing"]}]}, "no earlier stage produces"),
        (
            {"stages": [{"name": "t", "kind": "pytest"}, {"name": "t", "kind": "lint"}]},
            "Duplicate stage name",
        ),
    ],
)
def test_build_pipeline_rejects_bad_configs(tmp_path, payload, message):
    with pytest.raises(ConfigurationError, match=message):
        build_pipeline(payload, base_dir=tmp_path)


@pytest.mark.unit
def test_load_pipeline_config_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="Failed to read pipeline config"):
        load_pipeline_config(tmp_path / "missing.json")


@pytest.mark.unit
def test_load_pipeline_config_invalid_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="JSONDecodeError"):
        load_pipeline_config(path)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_run_pipeline_from_config_writes_report_and_summary(tmp_path):
    produce = "import pathlib; pathlib.Path('out.txt').write_text('hello')"
    consume = "import os, sys; sys.exit(0 if open(os.environ['PIPEWRIGHT_INPUT_GREETING']).read() == 'hello' else 1)"
    tests = "print('3 passed in 0.01s')"
    path = _write_config(
        tmp_path,
        {
            "name": "smoke",
            "stages": [
                {"name": "produce", "kind": "command", "argv": [sys.executable, "-c", produce], "outputs": {"greeting": "out.txt"}},
                {"name": "consume", "kind": "command", "argv": [sys.executable, "-c", consume], "inputs": ["greeting"]},
                {"name": "test", "kind": "pytest", "argv": [sys.executable, "-c", tests]},
                {"name": "lint", "kind": "lint", "argv": [sys.executable, "-c", "raise SystemExit(1)"], "required": False},
            ],
        },
    )

    seen = []
    summary, report_path = await run_pipeline_from_config(path, on_runner=seen.append)

    assert len(seen) == 1
    assert summary.status is RunStatus.PARTIAL
    assert report_path == (tmp_path / "artifacts" / "run_report.json").resolve()

    report = read_report(report_path)
    assert report.status is RunStatus.PARTIAL
    assert report.tests_passed == 3
    assert [f.stage for f in report.failures] == ["lint"]
    assert report.failures[0].artifact_key.startswith("stages/lint/")
    assert (tmp_path / "artifacts" / report.failures[0].artifact_key).exists()

    full = json.loads((tmp_path / "artifacts" / "run_summary.json").read_text(encoding="utf-8"))
    assert [r["stage"] for r in full["history"]] == ["produce", "consume", "test", "lint"]


@pytest.mark.integration
@pytest.mark.asyncio
async def test_run_pipeline_from_config_custom_paths(tmp_path):
    path = _write_config(tmp_path, {"stages": [{"name": "ok", "kind": "command", "argv": [sys.executable, "-c", "pass"]}]})

    summary, report_path = await run_pipeline_from_config(
        path,
        artifacts_dir=tmp_path / "arts",
        report_path=tmp_path / "reports" / "report.json",
    )

    assert summary.status is RunStatus.SUCCESS
    assert report_path == tmp_path / "reports" / "report.json"
    assert report_path.exists()
    assert (tmp_path / "reports" / "run_summary.json").exists()
    assert (tmp_path / "arts" / "index.jsonl").exists()
