"""Fleet controller: build one image, then launch and track N containers.

State is loaded once when the :class:`Orchestrator` is created and written
back wholesale after each structural change (start, stop, cleanup).

Naming and ports are allocated from the highest ordinal already tracked, so
a second ``start`` continues at ``<prefix>-<n+1>`` on ``port_start + n``
instead of colliding with the first batch.

A batch is not transactional: if container *k* fails to launch, containers
started before it keep running but are not recorded. Their ids are logged so
they can be removed by hand.
"""

from __future__ import annotations

from pathlib import Path

from podmo import reconciler
from podmo.config import Settings, get_settings
from podmo.engine import EngineRunner
from podmo.errors import EngineCommandError, PortConflictError
from podmo.image_builder import ImageBuilder
from podmo.logger import logger
from podmo.ssh_config import SshConfigEmitter
from podmo.state import StateStore
from podmo.types import ContainerRecord, FleetStatus, ProvisioningConfig
from podmo.utils import now_iso


class Orchestrator:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        runner: EngineRunner | None = None,
        store: StateStore | None = None,
        builder: ImageBuilder | None = None,
        ssh_emitter: SshConfigEmitter | None = None,
    ) -> None:
        s = settings or get_settings()
        self.name_prefix = s.fleet.name_prefix
        self.runner = runner or EngineRunner(s.engine.cli, timeout=s.engine.timeout_s)
        self.store = store or StateStore(s.state_path)
        self.builder = builder or ImageBuilder(
            self.runner,
            s.build_context_dir,
            root_password=s.build.root_password.get_secret_value(),
            tag_prefix=s.build.tag_prefix,
        )
        self.ssh_emitter = ssh_emitter or SshConfigEmitter(
            s.ssh_config_path, alias_prefix=s.ssh.host_alias_prefix
        )
        self.containers: list[ContainerRecord] = self.store.load()

    # ------------------------------------------------------------------
    # start
    # ------------------------------------------------------------------

    def allocate(self, config: ProvisioningConfig) -> list[tuple[str, int]]:
        """Return ``(name, port)`` for each container in the next batch.

        Raises PortConflictError if a port is already held by a tracked record.
        """
        ordinals = [
            r.ordinal
            for r in self.containers
            if r.ordinal is not None and r.name == f"{self.name_prefix}-{r.ordinal}"
        ]
        first = max(ordinals, default=0) + 1
        slots = [
            (f"{self.name_prefix}-{n}", config.port_start + n - 1)
            for n in range(first, first + config.count)
        ]

        if slots[-1][1] > 65535:
            raise ValueError(f"next batch would need host port {slots[-1][1]} (max 65535)")
        in_use = {r.port for r in self.containers}
        clashes = sorted(port for _, port in slots if port in in_use)
        if clashes:
            raise PortConflictError(clashes)
        return slots

    def start_containers(self, config: ProvisioningConfig) -> list[ContainerRecord]:
        """Build the fleet image and launch ``config.count`` containers.

        Any build or launch failure propagates; the state file is only written
        once every container in the batch is running.
        """
        logger.info("Starting containers", count=config.count, image=config.image)
        slots = self.allocate(config)
        image = self.builder.build(config)

        batch: list[ContainerRecord] = []
        for name, port in slots:
            logger.info("Starting container", name=name, port=port)
            try:
                container_id = self.runner.run_container(
                    name=name,
                    image=image,
                    host_port=port,
                    cpus=config.cpus,
                    memory=config.memory,
                    volumes=config.volumes,
                )
            except EngineCommandError:
                if batch:
                    logger.error(
                        "Batch aborted; earlier containers left running and untracked",
                        ids=[r.id for r in batch],
                    )
                raise
            batch.append(
                ContainerRecord(
                    id=container_id,
                    name=name,
                    port=port,
                    status="running",
                    created=now_iso(),
                )
            )
            logger.info("Container started", name=name, id=container_id[:12])

        self.containers.extend(batch)
        self.store.save(self.containers)
        self.ssh_emitter.emit(self.containers)
        logger.info("Started containers successfully", count=len(batch))
        return batch

    # ------------------------------------------------------------------
    # stop / status / cleanup
    # ------------------------------------------------------------------

    def stop_all_containers(self) -> int:
        """Stop every tracked container and forget the fleet. Returns the count."""
        if not self.containers:
            logger.info("No containers to stop")
            return 0

        count = len(self.containers)
        logger.info("Stopping containers", count=count)
        for record in self.containers:
            try:
                self.runner.stop(record.id)
                logger.info("Stopped container", name=record.name)
            except EngineCommandError as exc:
                logger.warning("Failed to stop container", name=record.name, err=str(exc))

        self.containers = []
        self.store.save(self.containers)
        return count

    def get_status(self) -> FleetStatus:
        return reconciler.get_status(self.containers, self.runner)

    def list_containers(self) -> list[ContainerRecord]:
        return self.get_status().containers

    def cleanup(self) -> int:
        """Remove terminated containers from the engine and the fleet. Returns the count."""
        logger.info("Cleaning up stopped containers")
        before = len(self.containers)
        self.containers = reconciler.cleanup(self.containers, self.runner)
        self.store.save(self.containers)
        removed = before - len(self.containers)
        logger.info("Cleanup finished", removed=removed, remaining=len(self.containers))
        return removed

    def regenerate_ssh_config(self) -> Path | None:
        """Rewrite the SSH config from tracked records; None if nothing is tracked."""
        if not self.containers:
            return None
        return self.ssh_emitter.emit(self.containers)
