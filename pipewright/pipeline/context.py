"""Pipeline run context.

This module defines the accumulator threaded through one pipeline run. It
maps output keys to the values (usually artifact paths) stages produced, and
enforces write-once semantics per key.

The context lives for a single run. It is dumped to the artifact sink at the
end of the run and then discarded.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional
from uuid import uuid4

from pipewright.pipeline.errors import ContextKeyConflict, MissingInputError


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PipelineContext:
    """Write-once key/value state passed stage to stage."""

    run_id: str = field(default_factory=lambda: uuid4().hex)
    created_at: str = field(default_factory=_utc_now_iso)

    values: Dict[str, Any] = field(default_factory=dict)
    produced_by: Dict[str, str] = field(default_factory=dict)

    def __contains__(self, key: object) -> bool:
        return key in self.values

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def put(self, key: str, value: Any, *, stage: str) -> None:
        if key in self.values:
            raise ContextKeyConflict(key, self.produced_by.get(key), stage)
        self.values[key] = value
        self.produced_by[key] = stage

    def put_many(self, outputs: Mapping[str, Any], *, stage: str) -> None:
        """Write several keys; nothing is written if any key already exists."""
        for key in outputs:
            if key in self.values:
                raise ContextKeyConflict(key, self.produced_by.get(key), stage)
        for key, value in outputs.items():
            self.put(key, value, stage=stage)

    def resolve(self, keys: Iterable[str], *, stage: str) -> Dict[str, Any]:
        """Return the values for keys, or raise MissingInputError naming every absent key."""
        keys = list(keys)
        missing = [k for k in keys if k not in self.values]
        if missing:
            raise MissingInputError(stage, missing)
        return {k: self.values[k] for k in keys}

    def to_payload(self) -> Dict[str, Any]:
        return {
            "schema_version": "1.0",
            "run_id": self.run_id,
            "created_at": self.created_at,
            "values": {k: _jsonable(v) for k, v in self.values.items()},
            "produced_by": dict(self.produced_by),
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "PipelineContext":
        ctx = cls()

        run_id = payload.get("run_id")
        if isinstance(run_id, str) and run_id:
            ctx.run_id = run_id

        created_at = payload.get("created_at")
        if isinstance(created_at, str) and created_at:
            ctx.created_at = created_at

        values = payload.get("values")
        if isinstance(values, dict):
            ctx.values = {str(k): v for k, v in values.items()}

        produced_by = payload.get("produced_by")
        if isinstance(produced_by, dict):
            ctx.produced_by = {str(k): str(v) for k, v in produced_by.items()}

        return ctx


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if hasattr(value, "__fspath__"):
        return str(value)
    return repr(value)


def new_context(run_id: Optional[str] = None) -> PipelineContext:
    """Create an empty context for a fresh run."""
    if run_id:
        return PipelineContext(run_id=run_id)
    return PipelineContext()
