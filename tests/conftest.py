"""Shared test fixtures for podmo."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from podmo.engine import EngineRunner
from podmo.errors import EngineCommandError

# ---------------------------------------------------------------------------
# Shared helpers (plain functions, not fixtures, importable by test files)
# ---------------------------------------------------------------------------


def make_settings(tmp_path: Path | None = None, **overrides):
    """Create a Settings object with sensible defaults for testing.

    When *tmp_path* is given, the state file, build context and SSH config
    all live under it. Keyword overrides replace whole sections.

    Usage::

        s = make_settings(tmp_path)
        s = make_settings(tmp_path, fleet=FleetConfig(name_prefix="web"))
    """
    from podmo.config import (
        BuildConfig,
        EngineConfig,
        FleetConfig,
        LoggingConfig,
        Settings,
        SshConfig,
        StartDefaultsConfig,
        StateConfig,
    )

    defaults = {
        "engine": EngineConfig(),
        "state": StateConfig(),
        "build": BuildConfig(),
        "fleet": FleetConfig(),
        "ssh": SshConfig(),
        "defaults": StartDefaultsConfig(),
        "logging": LoggingConfig(),
    }
    if tmp_path is not None:
        defaults.update(
            state=StateConfig(path=str(tmp_path / "state.json")),
            build=BuildConfig(context_dir=str(tmp_path / "context")),
            ssh=SshConfig(config_path=str(tmp_path / "ssh" / "config.orchestrator")),
        )
    defaults.update(overrides)
    return Settings.model_construct(**defaults)


def inspect_doc(status: str | None, started_at: str | None = "2024-01-01T00:00:05Z") -> str:
    """Render ``podman inspect`` output for a single container."""
    state: dict = {}
    if status is not None:
        state["Status"] = status
    if started_at is not None:
        state["StartedAt"] = started_at
    return json.dumps([{"Id": "x", "State": state}])


class FakeRunner(EngineRunner):
    """Records engine commands instead of running them.

    - ``run`` returns sequential ids (``cid-1``, ``cid-2``, ...)
    - ``inspect`` answers from ``statuses``; unknown ids fail like a removed container
    - subcommands listed in ``failing`` raise EngineCommandError
    - ``fail_run_at`` makes the n-th ``run`` call (1-based) fail
    """

    def __init__(self) -> None:
        super().__init__("podman")
        self.calls: list[tuple[str, ...]] = []
        self.statuses: dict[str, str | None] = {}
        self.failing: set[str] = set()
        self.fail_run_at: int | None = None
        self._runs = 0

    def run(self, *args: str) -> str:
        self.calls.append(args)
        sub = args[0]
        if sub in self.failing:
            raise EngineCommandError(" ".join(["podman", *args]), f"{sub} failed", 125)
        if sub == "run":
            self._runs += 1
            if self._runs == self.fail_run_at:
                raise EngineCommandError("podman run", "port is already allocated", 126)
            return f"cid-{self._runs}"
        if sub == "inspect":
            if args[1] not in self.statuses:
                raise EngineCommandError(f"podman inspect {args[1]}", "no such container", 125)
            return inspect_doc(self.statuses[args[1]])
        return ""

    def subcommands(self) -> list[str]:
        return [c[0] for c in self.calls]

    def calls_for(self, sub: str) -> list[tuple[str, ...]]:
        return [c for c in self.calls if c[0] == sub]


# ---------------------------------------------------------------------------
# Autouse fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch, tmp_path):
    """Ensure each test starts with a clean Settings singleton.

    Built from pure defaults with every path under ``tmp_path``. No
    podmo.toml, no .env, nothing written outside the test directory.
    """
    monkeypatch.setattr("podmo.config._settings", make_settings(tmp_path))


# ---------------------------------------------------------------------------
# Reusable fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()
