""" 
Schema Validation Utilities
===========================
JSON Schema loading and validation helpers.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from jsonschema import Draft202012Validator, FormatChecker
from jsonschema.exceptions import ValidationError


@lru_cache(maxsize=32)
def _load_schema(schema_filename: str) -> Dict[str, Any]:
    """Load a schema JSON file from pipewright/schemas.

    Args:
        schema_filename: File name under pipewright/schemas (for example 'run_report.schema.json').

    Raises:
        FileNotFoundError: When schema file is missing.
        ValueError: When schema file is not valid JSON or not a JSON object.
    """
    schemas_dir = Path(__file__).resolve().parent.parent / "schemas"
    schema_path = (schemas_dir / schema_filename).resolve()
    try:
        schema_path.relative_to(schemas_dir.resolve())
    except ValueError:
        raise ValueError(f"Schema path escapes schemas directory: {schema_filename}")
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema not found: {schema_filename}")

    try:
        with open(schema_path, "r", encoding="utf-8") as f:
            schema = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ValueError(f"Failed to load schema {schema_filename}: {e}")

    if not isinstance(schema, dict):
        raise ValueError(f"Schema {schema_filename} must be a JSON object")
    return schema


def validate_against_schema(payload: Any, schema_filename: str) -> None:
    """Validate payload against a JSON Schema.

    Args:
        payload: Any JSON-serializable object.
        schema_filename: File name under pipewright/schemas.

    Raises:
        ValueError: When payload fails validation.
    """
    schema = _load_schema(schema_filename)
    validator = Draft202012Validator(schema, format_checker=FormatChecker())

    errors = sorted(validator.iter_errors(payload), key=lambda e: [str(p) for p in e.path])
    if not errors:
        return

    error: ValidationError = errors[0]
    path = "/".join(str(p) for p in error.path)
    prefix = f"Validation failed at '{path}': " if path else "Validation failed: "
    raise ValueError(prefix + error.message)


def validate_run_report(payload: Dict[str, Any]) -> None:
    """Validate a serialized run report.

    Uses pipewright/schemas/run_report.schema.json.
    """
    validate_against_schema(payload, "run_report.schema.json")


def validate_pipeline_config(payload: Dict[str, Any]) -> None:
    """Validate a pipeline configuration document.

    Uses pipewright/schemas/pipeline_config.schema.json.
    """
    validate_against_schema(payload, "pipeline_config.schema.json")


def is_valid_run_report(payload: Any) -> bool:
    """Return True when payload validates as a run report."""
    if not isinstance(payload, dict):
        return False
    try:
        validate_run_report(payload)
        return True
    except ValueError:
        return False
