"""Shared utility functions.

Small helpers used across multiple modules: atomic file writing and
timestamp generation.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any


def write_text_atomic(path: Path, text: str) -> None:
    """Write text to a file using atomic rename (tmp → final).

    Ensures the target file is never partially written. Readers either
    see the old content or the complete new content.

    Creates parent directories if they don't exist.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(text)
    tmp.replace(path)


def write_json_atomic(path: Path, data: Any, *, indent: int | None = None) -> None:
    """Write JSON data to a file using atomic rename (see ``write_text_atomic``)."""
    write_text_atomic(path, json.dumps(data, indent=indent))


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat()


def generate_tag(prefix: str) -> str:
    """Generate a per-invocation tag using millisecond timestamp.

    The result is ``{prefix}-{ms_timestamp}``, e.g. ``orchestrator-1718000000000``.
    """
    ms = int(datetime.now(UTC).timestamp() * 1000)
    return f"{prefix}-{ms}"
