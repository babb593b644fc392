"""Centralized configuration: Pydantic BaseSettings with TOML + dotenv sources.

Settings live in ``podmo.toml`` in the working directory. Environment
variables override it with the ``PODMO_`` prefix and ``__`` as the nested
delimiter (e.g. ``PODMO_ENGINE__CLI=docker``).

Priority (highest wins): init args > env vars > .env > podmo.toml

Usage::

    from podmo.config import get_settings

    s = get_settings()
    print(s.engine.cli)
    print(s.state_path)
"""

from __future__ import annotations

from functools import cached_property
from pathlib import Path

from pydantic import BaseModel, SecretStr, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

# ---------------------------------------------------------------------------
# Sub-models (each maps to a [section] in podmo.toml)
# ---------------------------------------------------------------------------


class _StrictModel(BaseModel):
    """Base for all config sub-models. Unknown keys are rejected so typos fail loudly."""

    model_config = {"extra": "forbid"}


class EngineConfig(_StrictModel):
    cli: str = "podman"  # "podman" or "docker"; both accept the same subcommands
    timeout_s: float | None = None  # None = block until the engine returns

    @field_validator("timeout_s")
    @classmethod
    def positive_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("timeout_s must be positive")
        return v


class StateConfig(_StrictModel):
    path: str = "./orchestrator-state.json"


class BuildConfig(_StrictModel):
    context_dir: str = "."
    tag_prefix: str = "orchestrator"
    root_password: SecretStr = SecretStr("orch123")


class FleetConfig(_StrictModel):
    name_prefix: str = "orch-server"

    @field_validator("name_prefix")
    @classmethod
    def valid_prefix(cls, v: str) -> str:
        if not v or not v.replace("-", "").replace("_", "").isalnum():
            raise ValueError("name_prefix must be alphanumeric (dashes and underscores allowed)")
        return v


class SshConfig(_StrictModel):
    config_path: str = "~/.ssh/config.orchestrator"
    host_alias_prefix: str = ""


class StartDefaultsConfig(_StrictModel):
    """Defaults for ``podmo start`` options not given on the command line."""

    count: int = 3
    image: str = "ubuntu:20.04"
    packages: list[str] = ["vim", "curl", "wget"]
    port_start: int = 2000
    cpus: str = "1.0"
    memory: str = "512m"


class LoggingConfig(_StrictModel):
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper()


# ---------------------------------------------------------------------------
# Root Settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        toml_file="podmo.toml",
        env_file=".env",
        env_prefix="PODMO_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    engine: EngineConfig = EngineConfig()
    state: StateConfig = StateConfig()
    build: BuildConfig = BuildConfig()
    fleet: FleetConfig = FleetConfig()
    ssh: SshConfig = SshConfig()
    defaults: StartDefaultsConfig = StartDefaultsConfig()
    logging: LoggingConfig = LoggingConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority: init > env vars > .env > podmo.toml > file secrets."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    # --- Computed properties ---

    @cached_property
    def state_path(self) -> Path:
        return Path(self.state.path).expanduser()

    @cached_property
    def build_context_dir(self) -> Path:
        return Path(self.build.context_dir).expanduser()

    @cached_property
    def ssh_config_path(self) -> Path:
        return Path(self.ssh.config_path).expanduser()


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_settings: Settings | None = None


def get_settings() -> Settings:
    """Lazy cached singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached singleton (for tests)."""
    global _settings
    _settings = None
