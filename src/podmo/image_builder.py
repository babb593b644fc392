"""Custom image build: Dockerfile rendering and build-context staging.

Every fleet image is the requested base image plus an SSH server, sudo,
the requested packages, and any user scripts. Each build stages its inputs
into a fresh ``podmo-build-*`` directory under the configured context
directory and builds from there, so files already in the context directory
(an init script passed by relative path, a user's own ``Dockerfile``) are
never copied onto, overwritten or deleted.

Scripts are staged as ``script_<index>_<basename>`` so two scripts sharing a
basename never clobber each other and the Dockerfile can reference them in
order. The init script always lands at ``init_script.sh``.

The build directory is removed after every build, successful or not.
"""

from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from podmo.engine import EngineRunner
from podmo.errors import StagingError
from podmo.logger import logger
from podmo.types import ProvisioningConfig
from podmo.utils import generate_tag

BUILD_DIR_PREFIX = "podmo-build-"
INIT_SCRIPT_NAME = "init_script.sh"
DOCKERFILE_NAME = "Dockerfile"

SSHD_CMD = '["/usr/sbin/sshd", "-D"]'
STARTUP_CMD = '["/usr/local/bin/startup.sh"]'


@dataclass
class StagedInputs:
    """Files copied into one build's directory."""

    directory: Path
    # (staged file name, basename inside the image), in script order
    scripts: list[tuple[str, str]] = field(default_factory=list)
    init_script: str | None = None


class ImageBuilder:
    def __init__(
        self,
        runner: EngineRunner,
        context_dir: Path,
        *,
        root_password: str = "orch123",
        tag_prefix: str = "orchestrator",
    ) -> None:
        self.runner = runner
        self.context_dir = context_dir
        self.root_password = root_password
        self.tag_prefix = tag_prefix

    def build(self, config: ProvisioningConfig) -> str:
        """Build the fleet image for *config* and return its tag.

        Raises StagingError if the build directory cannot be created or a
        script cannot be copied, EngineCommandError if the pull or build fails.
        """
        build_dir = self._make_build_dir()
        try:
            staged = self.stage_inputs(config, StagedInputs(build_dir))
            content = self.render_dockerfile(config, staged)

            logger.info("Pulling base image", image=config.image)
            self.runner.pull(config.image)

            (build_dir / DOCKERFILE_NAME).write_text(content)
            tag = generate_tag(self.tag_prefix)
            logger.info("Building custom image", tag=tag, context=str(build_dir))
            self.runner.build(tag, build_dir)
            return tag
        finally:
            _remove_quietly(build_dir)

    def _make_build_dir(self) -> Path:
        try:
            self.context_dir.mkdir(parents=True, exist_ok=True)
            return Path(tempfile.mkdtemp(prefix=BUILD_DIR_PREFIX, dir=self.context_dir))
        except OSError as exc:
            raise StagingError(str(self.context_dir), exc.strerror or str(exc)) from exc

    def stage_inputs(self, config: ProvisioningConfig, staged: StagedInputs) -> StagedInputs:
        """Copy scripts and the init script into ``staged.directory``.

        *staged* is filled in as files are copied.
        """
        staged.directory.mkdir(parents=True, exist_ok=True)

        for i, script in enumerate(config.scripts):
            staged_name = f"script_{i}_{script.name}"
            self._copy(script, staged.directory / staged_name)
            staged.scripts.append((staged_name, script.name))

        if config.init_script is not None:
            self._copy(config.init_script, staged.directory / INIT_SCRIPT_NAME)
            staged.init_script = INIT_SCRIPT_NAME

        return staged

    def _copy(self, source: Path, dest: Path) -> None:
        try:
            shutil.copyfile(source, dest)
        except OSError as exc:
            raise StagingError(str(source), exc.strerror or str(exc)) from exc
        logger.info("Copied file to build context", source=str(source), dest=dest.name)

    def render_dockerfile(self, config: ProvisioningConfig, staged: StagedInputs) -> str:
        packages = " ".join(["openssh-server", *config.packages])
        lines = [
            f"FROM {config.image}",
            "",
            "RUN apt-get update && apt-get install -y sudo",
            "",
            "# Install SSH server and additional packages",
            f"RUN apt-get update && apt-get install -y {packages} && apt-get clean",
            "",
            "# Create SSH directory",
            "RUN mkdir -p /var/run/sshd /root/.ssh && chmod 700 /root/.ssh",
            "",
            "# Configure SSH",
            "RUN sed -i 's/#PermitRootLogin prohibit-password/PermitRootLogin yes/' "
            "/etc/ssh/sshd_config",
            "RUN sed -i 's/#PasswordAuthentication yes/PasswordAuthentication yes/' "
            "/etc/ssh/sshd_config",
            f"RUN echo 'root:{self.root_password}' | chpasswd",
            "",
            "# Generate SSH host keys",
            "RUN ssh-keygen -A",
        ]

        if staged.scripts:
            lines += ["", "# Copy custom scripts", "RUN mkdir -p /usr/local/scripts"]
            for staged_name, name in staged.scripts:
                lines.append(f"COPY ./{staged_name} /usr/local/scripts/{name}")
                lines.append(f"RUN chmod +x /usr/local/scripts/{name}")

        cmd = SSHD_CMD
        if staged.init_script:
            lines += [
                "",
                "# Copy and set up initialization script",
                f"COPY ./{staged.init_script} /usr/local/bin/init.sh",
                "RUN chmod +x /usr/local/bin/init.sh",
                "",
                "# Startup wrapper: run init, then hand PID 1 to sshd",
                "RUN echo '#!/bin/bash' > /usr/local/bin/startup.sh && \\",
                "    echo '/usr/local/bin/init.sh' >> /usr/local/bin/startup.sh && \\",
                "    echo 'exec /usr/sbin/sshd -D' >> /usr/local/bin/startup.sh && \\",
                "    chmod +x /usr/local/bin/startup.sh",
            ]
            cmd = STARTUP_CMD

        if config.dockerfile_instructions.strip():
            lines += ["", "# Custom Dockerfile instructions", config.dockerfile_instructions]

        lines += ["", "EXPOSE 22", "", f"CMD {cmd}", ""]
        return "\n".join(lines)


def _remove_quietly(build_dir: Path) -> None:
    try:
        shutil.rmtree(build_dir)
    except OSError as exc:
        logger.debug("Failed to remove build directory", path=str(build_dir), err=str(exc))
