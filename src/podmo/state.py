"""Fleet state file, the only record of tracked containers between runs.

The whole fleet is rewritten on every change. There is no locking: two podmo
processes sharing a state file will race, and the last writer wins.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path

from podmo.logger import logger
from podmo.types import ContainerRecord
from podmo.utils import write_json_atomic


class StateStore:
    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> list[ContainerRecord]:
        """Read tracked records. Missing or corrupt files yield an empty fleet."""
        if not self.path.exists():
            logger.debug("No state file, starting with an empty fleet", path=str(self.path))
            return []

        try:
            raw = json.loads(self.path.read_text())
            if not isinstance(raw, list):
                raise ValueError(f"expected a JSON list, got {type(raw).__name__}")
            return [ContainerRecord.from_dict(entry) for entry in raw]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Failed to load state file", path=str(self.path), err=str(exc))
            return []

    def save(self, records: Iterable[ContainerRecord]) -> None:
        data = [r.to_dict() for r in records]
        write_json_atomic(self.path, data, indent=2)
        logger.debug("State saved", path=str(self.path), containers=len(data))
