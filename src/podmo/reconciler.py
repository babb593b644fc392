"""Reconcile tracked records against what the engine reports.

Inspection failures are expected here (containers removed out of band) and
are handled per record. Only a missing or timed-out engine aborts cleanup.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence

from podmo.engine import EngineRunner
from podmo.errors import EngineCommandError
from podmo.logger import logger
from podmo.types import TERMINATED_STATUSES, ContainerRecord, FleetStatus


def get_status(records: Sequence[ContainerRecord], runner: EngineRunner) -> FleetStatus:
    """Merge live engine status into copies of *records*.

    The inputs are not modified and nothing is persisted, so a later cleanup
    may see a different picture.
    """
    merged: list[ContainerRecord] = []
    for record in records:
        try:
            state = runner.inspect(record.id).get("State") or {}
        except EngineCommandError as exc:
            logger.debug("Inspect failed", name=record.name, err=str(exc))
            merged.append(dataclasses.replace(record, status="not_found", uptime=None))
            continue

        merged.append(
            dataclasses.replace(
                record,
                status=state.get("Status") or "unknown",
                uptime=state.get("StartedAt") or record.created,
            )
        )

    return FleetStatus(total=len(records), containers=merged)


def cleanup(records: Sequence[ContainerRecord], runner: EngineRunner) -> list[ContainerRecord]:
    """Remove terminated containers and return the records still worth tracking.

    - exited/stopped: ``rm`` the container and drop the record
    - inspect fails: the container is already gone; drop without ``rm``
    - ``rm`` fails: keep the record so the next cleanup retries

    Raises EngineCommandError when the engine itself is unavailable (missing
    binary, timeout); nothing is dropped in that case.
    """
    kept: list[ContainerRecord] = []
    for record in records:
        try:
            status = (runner.inspect(record.id).get("State") or {}).get("Status")
        except EngineCommandError as exc:
            if exc.engine_unavailable:
                raise
            logger.info("Dropping container missing from engine", name=record.name)
            continue

        if status not in TERMINATED_STATUSES:
            kept.append(record)
            continue

        logger.info("Removing stopped container", name=record.name, status=status)
        try:
            runner.remove(record.id)
        except EngineCommandError as exc:
            logger.warning("Failed to remove container", name=record.name, err=str(exc))
            kept.append(record)

    return kept
