"""Exceptions raised by the orchestrator.

Only these abort an operation. Corrupt state files, per-container inspection
misses and leftover build-context files are handled where they occur and
only show up in the logs.
"""

from __future__ import annotations

# Exit codes EngineCommandError uses when the engine never answered.
ENGINE_NOT_FOUND = 127
ENGINE_TIMEOUT = -1


class PodmoError(Exception):
    """Base class for failures that should end a CLI command with exit 1."""


class EngineCommandError(PodmoError):
    """Raised when a container engine command fails or cannot be run."""

    def __init__(self, command: str, stderr: str, returncode: int) -> None:
        self.command = command
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(f"Engine command failed (exit {returncode}): {command}: {stderr}")

    @property
    def engine_unavailable(self) -> bool:
        """True when the binary is missing or the call timed out."""
        return self.returncode in (ENGINE_NOT_FOUND, ENGINE_TIMEOUT)


class StagingError(PodmoError):
    """Raised when a script or init script cannot be copied into the build context."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        super().__init__(f"Failed to stage {source}: {reason}")


class PortConflictError(PodmoError):
    """Raised when a new batch would reuse a host port already held by the fleet."""

    def __init__(self, ports: list[int]) -> None:
        self.ports = ports
        joined = ", ".join(str(p) for p in ports)
        super().__init__(f"Host port(s) already tracked by running fleet: {joined}")
