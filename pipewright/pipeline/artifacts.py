"""
Artifact Sink
=============
Durable storage for captured stage output, keyed by stage name and timestamp.

The filesystem sink writes each artifact atomically and records it in an
append-only `index.jsonl` ledger. A file lock guards the ledger so concurrent
runs sharing an artifacts directory do not interleave writes.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import hashlib
import json
import os
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, List, Optional

from filelock import FileLock, Timeout
from loguru import logger

from pipewright.config import TIMEOUTS

_SLUG_RE = re.compile(r"[^A-Za-z0-9._-]+")


def _utc_now_iso_z() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _slug(text: str) -> str:
    slug = _SLUG_RE.sub("-", text.strip()).strip("-.")
    return slug or "stage"


def stage_artifact_key(stage: str, started_at: str, attempt: int) -> str:
    """Key for one stage attempt's captured output."""
    stamp = started_at.replace("+00:00", "Z").replace(":", "")
    return f"stages/{_slug(stage)}/{_slug(stamp)}-attempt{attempt}.log"


def run_artifact_key(run_id: str, name: str) -> str:
    """Key for run-level dumps (context, summary)."""
    return f"runs/{_slug(run_id)}/{name}"


def validate_artifact_key(key: str) -> str:
    if not key or not isinstance(key, str):
        raise ValueError("artifact key must be a non-empty string")
    if "\\" in key:
        raise ValueError("artifact key must use '/' separators")
    path = PurePosixPath(key)
    if path.is_absolute():
        raise ValueError("artifact key must be relative")
    if any(part in ("", ".", "..") for part in key.split("/")):
        raise ValueError(f"artifact key has an invalid segment: {key}")
    return key


class ArtifactSink(ABC):
    """Store bytes under a key; retrieve them by the same key."""

    @abstractmethod
    def put(self, key: str, data: bytes) -> str:
        """Store data and return a human-readable location."""

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Return stored bytes; raise KeyError when the key is unknown."""

    def put_text(self, key: str, text: str) -> str:
        return self.put(key, text.encode("utf-8"))

    def put_json(self, key: str, payload: object) -> str:
        body = json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False) + "\n"
        return self.put_text(key, body)


class InMemoryArtifactSink(ArtifactSink):
    """Dictionary-backed sink for dry runs and tests."""

    def __init__(self) -> None:
        self._items: Dict[str, bytes] = {}

    def put(self, key: str, data: bytes) -> str:
        validate_artifact_key(key)
        self._items[key] = bytes(data)
        return f"memory://{key}"

    def get(self, key: str) -> bytes:
        return self._items[key]

    def keys(self) -> List[str]:
        return list(self._items)


class FilesystemArtifactSink(ArtifactSink):
    """Artifacts as files under root_dir, with a JSONL index."""

    def __init__(
        self,
        root_dir: str | Path,
        *,
        index_filename: str = "index.jsonl",
        lock_timeout_seconds: int = TIMEOUTS.FILE_LOCK,
    ):
        self.root_dir = Path(root_dir).expanduser().resolve()
        self.index_path = self.root_dir / index_filename
        self.lock_path = self.root_dir / f".{index_filename}.lock"
        self.lock_timeout_seconds = lock_timeout_seconds

    def _path_for(self, key: str) -> Path:
        validate_artifact_key(key)
        path = (self.root_dir / key).resolve()
        try:
            path.relative_to(self.root_dir)
        except ValueError:
            raise ValueError(f"artifact key escapes the artifacts directory: {key}")
        return path

    def put(self, key: str, data: bytes) -> str:
        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        tmp_path = path.with_name(f".{path.name}.tmp")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, path)

        entry = {
            "key": key,
            "path": str(path),
            "bytes": len(data),
            "sha256": hashlib.sha256(data).hexdigest(),
            "created_at": _utc_now_iso_z(),
        }
        lock = FileLock(str(self.lock_path), timeout=self.lock_timeout_seconds)
        try:
            with lock:
                with open(self.index_path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(entry, sort_keys=True) + "\n")
        except Timeout:
            logger.warning("Timed out acquiring artifact index lock at {}; {} stored without index entry", self.lock_path, key)

        return str(path)

    def get(self, key: str) -> bytes:
        path = self._path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise KeyError(key)

    def iter_index(self) -> Iterator[Dict[str, object]]:
        """Yield index entries in write order; unreadable lines are skipped."""
        if not self.index_path.exists():
            return
        with open(self.index_path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Skipping malformed artifact index line {} in {}", line_no, self.index_path)
                    continue
                if isinstance(entry, dict):
                    yield entry

    def keys(self) -> List[str]:
        return [str(e["key"]) for e in self.iter_index() if "key" in e]

    def location(self, key: str) -> Optional[Path]:
        path = self._path_for(key)
        return path if path.exists() else None
