"""
Captured Text Utilities
=======================
Decoding and bounded truncation for tool output captured by the runner.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

from typing import Any, Optional

TRUNCATION_MARKER = "\n... [{omitted} characters truncated] ...\n"


def to_text(value: Any) -> str:
    """Decode subprocess output (bytes, str or None) to text."""
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def truncate_head_tail(text: str, max_chars: int) -> str:
    """Keep the head and tail of oversized text.

    At most max_chars characters of the original are kept, split evenly
    between the beginning and the end, joined by a marker that records how
    much was dropped. Text within the limit is returned unchanged.
    """
    if max_chars <= 0 or len(text) <= max_chars:
        return text

    head = max_chars // 2
    tail = max_chars - head
    omitted = len(text) - head - tail
    tail_text = text[-tail:] if tail else ""
    return text[:head] + TRUNCATION_MARKER.format(omitted=omitted) + tail_text


def format_capture(
    *,
    stdout: str,
    stderr: str,
    header: Optional[str] = None,
) -> str:
    """Combine stdout/stderr into one artifact body with section markers."""
    parts = []
    if header:
        parts.append(header.rstrip("\n"))
    parts.append("=== stdout ===")
    parts.append(stdout.rstrip("\n"))
    parts.append("=== stderr ===")
    parts.append(stderr.rstrip("\n"))
    return "\n".join(parts) + "\n"


def first_line(text: str) -> str:
    """Return the first non-blank line, stripped."""
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return ""
