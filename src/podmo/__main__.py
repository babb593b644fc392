"""Entry point for `python -m podmo` / `podmo`.

Subcommands:
    podmo start         Build an image and start a batch of containers
    podmo stop          Stop all tracked containers
    podmo status        Show live status of tracked containers
    podmo cleanup       Remove stopped containers
    podmo ssh-config    Regenerate the SSH client config
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Callable

from pydantic import ValidationError

from podmo.config import StartDefaultsConfig, get_settings
from podmo.errors import PodmoError
from podmo.fleet import Orchestrator
from podmo.logger import set_level
from podmo.types import ProvisioningConfig


def _split(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()] if value else []


def _start(args: argparse.Namespace) -> None:
    config = ProvisioningConfig(
        count=args.count,
        image=args.image,
        packages=_split(args.packages),
        port_start=args.port_start,
        cpus=args.cpus,
        memory=args.memory,
        scripts=_split(args.scripts),
        init_script=args.init_script or None,
        dockerfile_instructions=args.dockerfile_instructions,
        volumes=_split(args.volumes),
    )
    orchestrator = Orchestrator()
    started = orchestrator.start_containers(config)
    print(f"\nStarted {len(started)} containers successfully!")
    print(f"SSH config has been generated in {orchestrator.ssh_emitter.path}")
    print(f"Include it from ~/.ssh/config with: Include {orchestrator.ssh_emitter.path}")


def _stop(args: argparse.Namespace) -> None:
    count = Orchestrator().stop_all_containers()
    print("No containers to stop." if count == 0 else f"Stopped {count} containers.")


def _status(args: argparse.Namespace) -> None:
    status = Orchestrator().get_status()
    print("\n=== Container Status ===\n")
    print(f"Total containers: {status.total}")
    if status.containers:
        print("\nContainers:")
    for c in status.containers:
        print(f"\n  Name: {c.name}")
        print(f"  ID: {c.id[:12]}")
        print(f"  Port: {c.port}")
        print(f"  Status: {c.status}")
        print(f"  Created: {c.created}")
        if c.uptime:
            print(f"  Started: {c.uptime}")
    print("")


def _cleanup(args: argparse.Namespace) -> None:
    removed = Orchestrator().cleanup()
    print(f"Removed {removed} stopped containers.")


def _ssh_config(args: argparse.Namespace) -> None:
    path = Orchestrator().regenerate_ssh_config()
    if path is None:
        print("No containers found. Start containers first.")
        return
    print(f"SSH configuration regenerated: {path}")


def build_parser(defaults: StartDefaultsConfig | None = None) -> argparse.ArgumentParser:
    d = defaults or StartDefaultsConfig()
    parser = argparse.ArgumentParser(
        prog="podmo",
        description="Orchestrate podman containers for server farm simulation",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    start = sub.add_parser("start", help="Start containers")
    start.add_argument(
        "-c",
        "--count",
        type=int,
        default=d.count,
        help=f"Number of containers (default: {d.count})",
    )
    start.add_argument("-i", "--image", default=d.image, help=f"Base image (default: {d.image})")
    start.add_argument(
        "-p",
        "--packages",
        default=",".join(d.packages),
        help="Additional packages to install (comma-separated)",
    )
    start.add_argument(
        "--port-start",
        type=int,
        default=d.port_start,
        help=f"Starting host port (default: {d.port_start})",
    )
    start.add_argument("--cpus", default=d.cpus, help="CPU allocation per container")
    start.add_argument("--memory", default=d.memory, help="Memory allocation per container")
    start.add_argument(
        "--scripts", default="", help="Local scripts to copy into containers (comma-separated)"
    )
    start.add_argument(
        "--init-script", default="", help="Initialization script to run on container startup"
    )
    start.add_argument(
        "--dockerfile-instructions", default="", help="Custom Dockerfile instructions to add"
    )
    start.add_argument(
        "--volumes",
        default="",
        help="Volumes to mount (format: /host/path:/container/path,...)",
    )
    start.set_defaults(func=_start, doing="starting containers")

    sub.add_parser("stop", help="Stop all containers").set_defaults(
        func=_stop, doing="stopping containers"
    )
    sub.add_parser("status", help="Check status of containers").set_defaults(
        func=_status, doing="getting status"
    )
    sub.add_parser("cleanup", help="Clean up stopped containers").set_defaults(
        func=_cleanup, doing="during cleanup"
    )
    sub.add_parser("ssh-config", help="Regenerate SSH configuration").set_defaults(
        func=_ssh_config, doing="regenerating SSH config"
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    s = get_settings()
    set_level(s.logging.level)

    args = build_parser(s.defaults).parse_args(argv)
    func: Callable[[argparse.Namespace], None] = args.func
    try:
        func(args)
    except ValidationError as exc:
        errors = "; ".join(e["msg"] for e in exc.errors())
        print(f"Error {args.doing}: {errors}", file=sys.stderr)
        sys.exit(1)
    except (PodmoError, ValueError) as exc:
        print(f"Error {args.doing}: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
