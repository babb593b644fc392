"""Data models for podmo."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

# Statuses the engine reports for a container that is no longer running.
TERMINATED_STATUSES = frozenset({"exited", "stopped"})

# Fields written to the state file, in order. ``uptime`` is derived and never persisted.
_PERSISTED_FIELDS = ("id", "name", "port", "status", "created")

_ORDINAL_RE = re.compile(r"-(\d+)$")
_PACKAGE_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9+.:=~_-]*$")


@dataclass
class ContainerRecord:
    id: str  # assigned by the engine on `run`
    name: str  # <prefix>-<ordinal>
    port: int  # host port mapped to guest port 22
    status: str = "unknown"  # last known; a cache of the engine's answer
    created: str = ""  # ISO-8601, set once
    uptime: str | None = field(default=None, compare=False)  # StartedAt, status reports only

    @property
    def ordinal(self) -> int | None:
        m = _ORDINAL_RE.search(self.name)
        return int(m.group(1)) if m else None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        return {k: data[k] for k in _PERSISTED_FIELDS}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ContainerRecord:
        """Rebuild a record from its persisted form.

        Raises KeyError/TypeError/ValueError on a malformed entry.
        """
        return cls(
            id=str(raw["id"]),
            name=str(raw["name"]),
            port=int(raw["port"]),
            status=str(raw.get("status", "unknown")),
            created=str(raw.get("created", "")),
        )


@dataclass
class FleetStatus:
    """Result of a status query: tracked count plus live-merged records."""

    total: int
    containers: list[ContainerRecord] = field(default_factory=list)


class ProvisioningConfig(BaseModel):
    """One ``start`` request. Transient, never persisted."""

    model_config = {"extra": "forbid"}

    count: int = Field(default=1, ge=1)
    image: str = "ubuntu:20.04"
    packages: list[str] = []
    port_start: int = Field(default=2000, ge=1, le=65535)
    cpus: str = "1.0"
    memory: str = "512m"
    scripts: list[Path] = []
    init_script: Path | None = None
    # Appended to the Dockerfile verbatim, unvalidated.
    dockerfile_instructions: str = ""
    volumes: list[str] = []  # host_path:container_path

    @field_validator("packages", "scripts", "volumes", mode="before")
    @classmethod
    def drop_blank_entries(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            return [
                item.strip() if isinstance(item, str) else item
                for item in v
                if str(item).strip()
            ]
        return v

    @field_validator("init_script", mode="before")
    @classmethod
    def blank_init_script_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("image")
    @classmethod
    def image_has_no_whitespace(cls, v: str) -> str:
        if not v or any(ch.isspace() for ch in v):
            raise ValueError(f"invalid image reference: {v!r}")
        return v

    @field_validator("packages")
    @classmethod
    def valid_package_names(cls, v: list[str]) -> list[str]:
        for name in v:
            if not _PACKAGE_RE.match(name):
                raise ValueError(f"invalid package name: {name!r}")
        return v

    @field_validator("volumes")
    @classmethod
    def valid_volume_specs(cls, v: list[str]) -> list[str]:
        return [_normalize_volume(spec) for spec in v]

    @model_validator(mode="after")
    def ports_fit_range(self) -> ProvisioningConfig:
        last = self.port_start + self.count - 1
        if last > 65535:
            raise ValueError(f"port range {self.port_start}-{last} exceeds 65535")
        return self


def _normalize_volume(spec: str) -> str:
    parts = spec.split(":")
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"volume must be host_path:container_path, got {spec!r}")
    for part in parts:
        if any(ch.isspace() or not ch.isprintable() for ch in part):
            raise ValueError(f"volume path contains whitespace or control characters: {spec!r}")
    host, guest = parts
    return f"{Path(host).expanduser()}:{guest}"
