"""
Tests for text capture and subprocess environment helpers.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

import os
from unittest.mock import patch

import pytest

from pipewright.utils.subprocess_env import build_minimal_subprocess_env, input_env_name, inputs_to_env
from pipewright.utils.text import first_line, format_capture, to_text, truncate_head_tail


@pytest.mark.unit
def test_to_text_decodes_bytes_and_none():
    assert to_text(None) == ""
    assert to_text(b"caf\xc3\xa9") == "café"
    assert to_text(b"\xff") == "�"
    assert to_text(3) == "3"


@pytest.mark.unit
def test_truncate_head_tail_keeps_short_text():
    assert truncate_head_tail("abc", 10) == "abc"
    assert truncate_head_tail("abc", 0) == "abc"


@pytest.mark.unit
def test_truncate_head_tail_keeps_both_ends():
    text = "HEAD" + "m" * 100 + "TAIL"

    out = truncate_head_tail(text, 10)

    assert out.startswith("HEADm")
    assert out.endswith("mTAIL")
    assert "[98 characters truncated]" in out


@pytest.mark.unit
def test_format_capture_sections():
    body = format_capture(stdout="out\n", stderr="err", header="stage: lint\n")

    assert body == "stage: lint\n=== stdout ===\nout\n=== stderr ===\nerr\n"


@pytest.mark.unit
def test_first_line_skips_blank_lines():
    assert first_line("\n   \n  error: bad thing  \nmore") == "error: bad thing"
    assert first_line("") == ""


@pytest.mark.unit
def test_input_env_name_normalizes_keys():
    assert input_env_name("code_dir") == "PIPEWRIGHT_INPUT_CODE_DIR"
    assert input_env_name("generated.code-dir") == "PIPEWRIGHT_INPUT_GENERATED_CODE_DIR"
    assert inputs_to_env({"image": "app:1", "count": 2}) == {
        "PIPEWRIGHT_INPUT_IMAGE": "app:1",
        "PIPEWRIGHT_INPUT_COUNT": "2",
    }


@pytest.mark.unit
def test_minimal_env_drops_secrets():
    with patch.dict(os.environ, {"PATH": "/bin", "ANTHROPIC_API_KEY": "secret"}, clear=True):
        env = build_minimal_subprocess_env()

    assert env["PATH"] == "/bin"
    assert "ANTHROPIC_API_KEY" not in env
    assert env["PYTHONDONTWRITEBYTECODE"] == "1"


@pytest.mark.unit
def test_minimal_env_allowlist_and_extra():
    with patch.dict(os.environ, {"PATH": "/bin", "CI": "true"}, clear=True):
        env = build_minimal_subprocess_env(allowlist=["CI"], extra={"PIPEWRIGHT_STAGE": "lint"})

    assert env["CI"] == "true"
    assert env["PIPEWRIGHT_STAGE"] == "lint"


@pytest.mark.unit
def test_unsanitized_env_inherits_parent():
    with patch.dict(os.environ, {"PATH": "/bin", "ANTHROPIC_API_KEY": "secret"}, clear=True):
        env = build_minimal_subprocess_env(sanitize_env=False, extra={"X": "1"})

    assert env["ANTHROPIC_API_KEY"] == "secret"
    assert env["X"] == "1"
