"""Container engine CLI wrapper.

Every engine interaction goes through :class:`EngineRunner`, which runs the
``podman`` (or ``docker``) binary as a blocking subprocess and returns its
stripped stdout. Nothing here retries.
"""

from __future__ import annotations

import json
import shlex
import subprocess
from pathlib import Path
from typing import Any

from podmo.errors import ENGINE_NOT_FOUND, ENGINE_TIMEOUT, EngineCommandError
from podmo.logger import logger

# Extra capabilities granted to every fleet container (ping, tcpdump, iptables).
NETWORK_CAPABILITIES = ("NET_ADMIN", "NET_RAW")


class EngineRunner:
    """Runs container engine subcommands."""

    def __init__(self, cli: str = "podman", timeout: float | None = None) -> None:
        self.cli = cli
        self.timeout = timeout

    def run(self, *args: str) -> str:
        """Run ``<cli> *args`` and return stripped stdout.

        Raises EngineCommandError on non-zero exit, a missing binary, or timeout.
        """
        argv = [self.cli, *args]
        command = shlex.join(argv)
        logger.debug("Running engine command", command=command)
        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise EngineCommandError(
                command, f"{self.cli} not found on PATH", ENGINE_NOT_FOUND
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise EngineCommandError(
                command, f"timed out after {self.timeout}s", ENGINE_TIMEOUT
            ) from exc

        if result.returncode != 0:
            raise EngineCommandError(command, result.stderr.strip(), result.returncode)
        return result.stdout.strip()

    # --- The six engine operations ---

    def pull(self, image: str) -> None:
        self.run("pull", image)

    def build(self, tag: str, context_dir: Path) -> None:
        self.run("build", "-t", tag, str(context_dir))

    def run_container(
        self,
        *,
        name: str,
        image: str,
        host_port: int,
        cpus: str,
        memory: str,
        volumes: list[str] | None = None,
    ) -> str:
        """Start a detached container with guest port 22 published; return its id."""
        args = [
            "run",
            "-d",
            "--name",
            name,
            f"--cpus={cpus}",
            f"--memory={memory}",
            "-p",
            f"{host_port}:22",
        ]
        args += [f"--cap-add={cap}" for cap in NETWORK_CAPABILITIES]
        for volume in volumes or []:
            args += ["-v", volume]
        args.append(image)
        return self.run(*args)

    def stop(self, container_id: str) -> None:
        self.run("stop", container_id)

    def inspect(self, container_id: str) -> dict[str, Any]:
        """Return the first inspect document for *container_id*.

        Raises EngineCommandError if the engine fails, the output is not the
        expected JSON list, or the document's ``State`` is not an object.
        """
        command = f"{self.cli} inspect {container_id}"
        output = self.run("inspect", container_id)
        try:
            data = json.loads(output)
        except json.JSONDecodeError as exc:
            raise EngineCommandError(command, str(exc), 0) from exc
        if isinstance(data, list):
            data = data[0] if data else None
        if not isinstance(data, dict):
            raise EngineCommandError(command, "unexpected inspect output", 0)
        if not isinstance(data.get("State", {}), dict):
            raise EngineCommandError(command, "unexpected inspect State", 0)
        return data

    def remove(self, container_id: str) -> None:
        self.run("rm", container_id)
