"""
Centralized Configuration
=========================
Centralized configuration values and constants for pipewright.

This module provides:
- Timeout configuration for stages, remediation and LLM calls
- Artifact capture limits
- Runner defaults (retry budget, report filenames)
- Tracing settings

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class TimeoutConfig:
    """Centralized timeout configuration in seconds."""

    # LLM API timeouts (Claude codegen and triage)
    LLM_API: int = 600  # 10 minutes for large generations
    LLM_CONNECT: int = 30  # Connection timeout

    # Stage invocation default when a stage does not set its own
    STAGE_DEFAULT: int = int(os.getenv("PIPEWRIGHT_STAGE_TIMEOUT", "1800"))

    # Remediation sub-step (triage call plus fix command)
    REMEDIATION: int = int(os.getenv("PIPEWRIGHT_REMEDIATION_TIMEOUT", "600"))

    # Tool version probes (e.g. `ruff --version`)
    VERSION_PROBE: int = 30

    # File operations
    FILE_LOCK: int = 30  # File lock acquisition


@dataclass(frozen=True)
class ArtifactConfig:
    """Artifact capture configuration."""

    ROOT_DIR: str = os.getenv("PIPEWRIGHT_ARTIFACTS_DIR", "artifacts")

    # Diagnostic text kept on a failed StageResult (head + tail)
    MAX_DIAGNOSTIC_CHARS: int = int(os.getenv("PIPEWRIGHT_MAX_DIAGNOSTIC_CHARS", "8000"))

    # Captured stage output persisted to the artifact sink (head + tail)
    MAX_ARTIFACT_CHARS: int = int(os.getenv("PIPEWRIGHT_MAX_ARTIFACT_CHARS", "200000"))


@dataclass(frozen=True)
class RunnerConfig:
    """Pipeline runner defaults."""

    # Remediation + retry rounds allowed per failed remediable stage
    RETRY_BUDGET: int = int(os.getenv("PIPEWRIGHT_RETRY_BUDGET", "1"))

    REPORT_FILENAME: str = "run_report.json"
    SUMMARY_FILENAME: str = "run_summary.json"


@dataclass(frozen=True)
class TriageConfig:
    """Failure triage configuration."""

    MODEL: str = os.getenv("PIPEWRIGHT_TRIAGE_MODEL", "sonnet")
    MAX_TOKENS: int = int(os.getenv("PIPEWRIGHT_TRIAGE_MAX_TOKENS", "4096"))


@dataclass(frozen=True)
class TracingConfig:
    """Tracing configuration."""

    SERVICE_NAME: str = "pipewright"
    OTLP_ENDPOINT: str = os.getenv("OTLP_ENDPOINT", "http://localhost:4318/v1/traces")
    ENABLED: bool = os.getenv("ENABLE_TRACING", "false").lower() == "true"


# Global singleton instances
TIMEOUTS = TimeoutConfig()
ARTIFACTS = ArtifactConfig()
RUNNER = RunnerConfig()
TRIAGE = TriageConfig()
TRACING = TracingConfig()


def get_timeout(operation: str) -> int:
    """Get timeout for a specific operation type.

    Args:
        operation: One of 'stage', 'remediation', 'llm', 'llm_connect',
            'version_probe', 'file_lock'

    Returns:
        Timeout in seconds
    """
    mapping = {
        "stage": TIMEOUTS.STAGE_DEFAULT,
        "remediation": TIMEOUTS.REMEDIATION,
        "llm": TIMEOUTS.LLM_API,
        "llm_connect": TIMEOUTS.LLM_CONNECT,
        "version_probe": TIMEOUTS.VERSION_PROBE,
        "file_lock": TIMEOUTS.FILE_LOCK,
    }
    return mapping.get(operation, TIMEOUTS.STAGE_DEFAULT)
