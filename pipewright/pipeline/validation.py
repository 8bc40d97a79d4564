"""Stage list validation.

Runs before any stage executes. Every problem raises ConfigurationError, so a
run either starts with a sound stage graph or does not start at all.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, List, Sequence

from pipewright.capabilities.base import Capability
from pipewright.pipeline.errors import ConfigurationError
from pipewright.pipeline.stage import Stage


def validate_stages(stages: Sequence[Stage]) -> List[Stage]:
    """Check the stage graph and return the stages with 1-based ordinals assigned.

    Raises:
        ConfigurationError: empty list, blank or duplicate names, a capability
            that is not a Capability, an ordinal that disagrees with the
            position, a non-positive timeout, an input not produced by a
            strictly earlier stage, or an output key declared twice.
    """
    if not stages:
        raise ConfigurationError("Pipeline has no stages")

    seen_names: Dict[str, int] = {}
    producers: Dict[str, str] = {}
    ordered: List[Stage] = []

    for position, stage in enumerate(stages, start=1):
        if not isinstance(stage, Stage):
            raise ConfigurationError(f"Entry {position} is not a Stage: {type(stage).__name__}")

        name = stage.name.strip() if isinstance(stage.name, str) else ""
        if not name:
            raise ConfigurationError(f"Stage at position {position} has no name")
        if name in seen_names:
            raise ConfigurationError(
                f"Duplicate stage name '{name}' at positions {seen_names[name]} and {position}"
            )
        seen_names[name] = position

        if not isinstance(stage.capability, Capability):
            raise ConfigurationError(f"Stage '{name}' has no capability to invoke")

        if stage.ordinal is not None and stage.ordinal != position:
            raise ConfigurationError(
                f"Stage '{name}' declares ordinal {stage.ordinal} but sits at position {position}"
            )

        if stage.timeout_seconds is not None and stage.timeout_seconds <= 0:
            raise ConfigurationError(f"Stage '{name}' has a non-positive timeout")

        for key in stage.inputs:
            if key not in producers:
                if key in stage.outputs:
                    raise ConfigurationError(f"Stage '{name}' reads its own output '{key}'")
                raise ConfigurationError(
                    f"Stage '{name}' reads '{key}', which no earlier stage produces"
                )

        for key in stage.outputs:
            if not key:
                raise ConfigurationError(f"Stage '{name}' declares a blank output key")
            if key in producers:
                raise ConfigurationError(
                    f"Output '{key}' of stage '{name}' is already produced by stage '{producers[key]}'"
                )
            producers[key] = name

        ordered.append(replace(stage, name=name, ordinal=position))

    return ordered
