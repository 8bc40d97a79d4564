"""
Subprocess Environment Utilities
===============================
Helpers for building minimal environment dictionaries for tool invocations.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import os
import re
from typing import Any, Dict, Iterable, Mapping, Optional

INPUT_ENV_PREFIX = "PIPEWRIGHT_INPUT_"

_ENV_KEY_UNSAFE_RE = re.compile(r"[^A-Z0-9_]")


def build_minimal_subprocess_env(
    *,
    sanitize_env: bool = True,
    allowlist: Optional[Iterable[str]] = None,
    extra: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Return an environment dict suitable for subprocess execution.

    When sanitize_env is True, only a small allowlist is inherited from the parent
    environment to reduce accidental secret leakage into external tools.

    Args:
        sanitize_env: If False, inherits the full parent env.
        allowlist: Optional extra allowlist keys to include.
        extra: Variables set on top of the inherited environment.

    Returns:
        Dict[str, str] to pass as subprocess env.
    """

    base_allowlist = {
        "PATH",
        "HOME",
        "LANG",
        "LC_ALL",
        "LC_CTYPE",
        "TMPDIR",
        "TEMP",
        "TMP",
        "SSL_CERT_FILE",
        "SSL_CERT_DIR",
        "REQUESTS_CA_BUNDLE",
        "CURL_CA_BUNDLE",
        "DOCKER_HOST",
        "VIRTUAL_ENV",
    }

    if allowlist is not None:
        for key in allowlist:
            if isinstance(key, str) and key:
                base_allowlist.add(key)

    env: Dict[str, str] = {}
    parent = os.environ

    for key in base_allowlist:
        value = parent.get(key)
        if value is not None:
            env[key] = value

    env.setdefault("PYTHONDONTWRITEBYTECODE", "1")
    env.setdefault("PYTHONNOUSERSITE", "1")

    if extra:
        for key, value in extra.items():
            env[str(key)] = str(value)

    if not sanitize_env:
        inherited = dict(parent)
        inherited.update(env)
        return inherited

    return env


def input_env_name(key: str) -> str:
    """Map a context key to the env var a command sees it under.

    `generated.code-dir` becomes `PIPEWRIGHT_INPUT_GENERATED_CODE_DIR`.
    """
    return INPUT_ENV_PREFIX + _ENV_KEY_UNSAFE_RE.sub("_", key.upper())


def inputs_to_env(inputs: Mapping[str, Any]) -> Dict[str, str]:
    """Export resolved stage inputs as environment variables."""
    return {input_env_name(k): str(v) for k, v in inputs.items()}
