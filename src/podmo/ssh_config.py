"""SSH client config for the fleet.

The file is regenerated from scratch every time so it never drifts from the
tracked records. Users pull it into ``~/.ssh/config`` with an ``Include``.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from podmo.logger import logger
from podmo.types import ContainerRecord
from podmo.utils import write_text_atomic

_HEADER = "# SSH Configuration for orchestrated containers\n# Auto-generated by podmo\n\n"


class SshConfigEmitter:
    def __init__(self, path: Path, *, alias_prefix: str = "") -> None:
        self.path = path
        self.alias_prefix = alias_prefix

    def render(self, records: Iterable[ContainerRecord]) -> str:
        blocks = [_HEADER]
        for r in records:
            blocks.append(
                f"# Container: {r.name}\n"
                f"Host {self.alias_prefix}{r.name}\n"
                "    HostName localhost\n"
                f"    Port {r.port}\n"
                "    User root\n"
                "    PasswordAuthentication yes\n"
                "    StrictHostKeyChecking no\n"
                "    UserKnownHostsFile /dev/null\n"
                "    LogLevel ERROR\n\n"
            )
        return "".join(blocks)

    def emit(self, records: Iterable[ContainerRecord]) -> Path:
        """Overwrite the config file with one Host block per record."""
        write_text_atomic(self.path, self.render(records))
        logger.info(
            "SSH configuration written",
            path=str(self.path),
            hint=f"add 'Include {self.path}' to ~/.ssh/config",
        )
        return self.path
