"""
Configuration Tests
===================

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

import dataclasses

import pytest

from pipewright.config import ARTIFACTS, RUNNER, TIMEOUTS, TRIAGE, get_timeout
from pipewright.pipeline.policy import RunnerPolicy


@pytest.mark.unit
def test_config_singletons_are_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        TIMEOUTS.STAGE_DEFAULT = 1


@pytest.mark.unit
def test_get_timeout_known_and_unknown_operations():
    assert get_timeout("llm") == TIMEOUTS.LLM_API
    assert get_timeout("version_probe") == TIMEOUTS.VERSION_PROBE
    assert get_timeout("something-else") == TIMEOUTS.STAGE_DEFAULT


@pytest.mark.unit
def test_runner_policy_defaults_follow_config():
    policy = RunnerPolicy()

    assert policy.retry_budget == RUNNER.RETRY_BUDGET
    assert policy.default_timeout_seconds == float(TIMEOUTS.STAGE_DEFAULT)
    assert policy.max_diagnostic_chars == ARTIFACTS.MAX_DIAGNOSTIC_CHARS
    assert policy.max_artifact_chars == ARTIFACTS.MAX_ARTIFACT_CHARS


@pytest.mark.unit
def test_triage_model_is_a_known_tier():
    assert TRIAGE.MODEL in {"opus", "sonnet", "haiku"}
