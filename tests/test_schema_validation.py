"""
Tests for Schema Validation Utilities
====================================

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

import json
from unittest.mock import patch

import pytest
import pipewright.utils.schema_validation as schema_validation
from pipewright.utils.schema_validation import (
    is_valid_run_report,
    validate_against_schema,
    validate_pipeline_config,
    validate_run_report,
)


def _valid_report():
    return {
        "status": "partial",
        "time_taken_seconds": 12.5,
        "tools_used": [{"name": "ruff", "version": "ruff 0.6.9"}],
        "tests_passed": 3,
        "tests_failed": 0,
        "failures": [
            {
                "stage": "lint",
                "attempt": 1,
                "error_type": "StageFailure",
                "error": "exited with code 1",
                "started_at": "2026-01-05T10:00:00+00:00",
                "finished_at": "2026-01-05T10:00:01+00:00",
                "artifact_key": None,
            }
        ],
        "recommendations": ["Review lint findings."],
    }


@pytest.mark.unit
def test_validate_run_report_accepts_valid_payload():
    validate_run_report(_valid_report())
    assert is_valid_run_report(_valid_report()) is True


@pytest.mark.unit
def test_validate_run_report_reports_path_of_first_error():
    bad = _valid_report()
    bad["failures"][0]["attempt"] = 0

    with pytest.raises(ValueError, match="failures/0/attempt"):
        validate_run_report(bad)


@pytest.mark.unit
def test_is_valid_run_report_false_for_non_dict():
    assert is_valid_run_report(["nope"]) is False


@pytest.mark.unit
def test_validate_pipeline_config_accepts_minimal_config():
    validate_pipeline_config({"stages": [{"name": "test", "kind": "pytest"}]})


@pytest.mark.unit
@pytest.mark.parametrize(
    "config",
    [
        {"stages": []},
        {"stages": [{"name": "x", "kind": "make"}]},
        {"stages": [{"kind": "pytest"}]},
        {"stages": [{"name": "x", "kind": "command", "argv": []}]},
        {"stages": [{"name": "x", "kind": "pytest"}], "retry_budget": -1},
        {"stages": [{"name": "x", "kind": "pytest"}], "remediation": {"kind": "magic"}},
    ],
)
def test_validate_pipeline_config_rejects_bad_configs(config):
    with pytest.raises(ValueError):
        validate_pipeline_config(config)


@pytest.mark.unit
def test_load_schema_rejects_path_escape():
    with pytest.raises(ValueError, match="escapes"):
        validate_against_schema({}, "../config.py")


@pytest.mark.unit
def test_load_schema_missing_file():
    with pytest.raises(FileNotFoundError):
        validate_against_schema({}, "does_not_exist.schema.json")


@pytest.mark.unit
def test_load_schema_invalid_json(tmp_path):
    schemas_dir = tmp_path / "schemas"
    schemas_dir.mkdir()
    (schemas_dir / "broken.schema.json").write_text("{", encoding="utf-8")

    fake_module_file = tmp_path / "utils" / "schema_validation.py"
    fake_module_file.parent.mkdir()
    fake_module_file.write_text("", encoding="utf-8")

    schema_validation._load_schema.cache_clear()
    try:
        with patch.object(schema_validation, "__file__", str(fake_module_file)):
            with pytest.raises(ValueError, match="Failed to load schema"):
                schema_validation._load_schema("broken.schema.json")
    finally:
        schema_validation._load_schema.cache_clear()


@pytest.mark.unit
def test_schema_files_are_valid_json():
    from pathlib import Path

    schemas_dir = Path(schema_validation.__file__).resolve().parent.parent / "schemas"
    for path in schemas_dir.glob("*.schema.json"):
        assert isinstance(json.loads(path.read_text(encoding="utf-8")), dict)
