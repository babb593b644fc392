"""Tests for Dockerfile rendering and build-context staging."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeRunner

from podmo.errors import EngineCommandError, StagingError
from podmo.image_builder import ImageBuilder, StagedInputs
from podmo.types import ProvisioningConfig


@pytest.fixture
def context(tmp_path: Path) -> Path:
    ctx = tmp_path / "context"
    ctx.mkdir()
    return ctx


@pytest.fixture
def scripts(tmp_path: Path) -> list[Path]:
    src = tmp_path / "src"
    (src / "a").mkdir(parents=True)
    (src / "b").mkdir(parents=True)
    first = src / "a" / "setup.sh"
    second = src / "b" / "setup.sh"
    first.write_text("#!/bin/sh\necho a\n")
    second.write_text("#!/bin/sh\necho b\n")
    return [first, second]


def _render(builder: ImageBuilder, config: ProvisioningConfig) -> str:
    staged = builder.stage_inputs(config, StagedInputs(builder.context_dir))
    return builder.render_dockerfile(config, staged)


class TestRenderDockerfile:
    def test_single_install_line_with_packages(self, context: Path, runner: FakeRunner):
        config = ProvisioningConfig(count=2, image="ubuntu:20.04", packages=["curl"])
        text = _render(ImageBuilder(runner, context), config)

        assert text.startswith("FROM ubuntu:20.04\n")
        install = [line for line in text.splitlines() if "openssh-server" in line]
        assert len(install) == 1
        assert "apt-get install -y openssh-server curl" in install[0]
        assert "apt-get install -y sudo" in text

    def test_ssh_setup(self, context: Path, runner: FakeRunner):
        text = _render(ImageBuilder(runner, context, root_password="s3cret"), ProvisioningConfig())
        assert "PermitRootLogin yes" in text
        assert "PasswordAuthentication yes" in text
        assert "RUN echo 'root:s3cret' | chpasswd" in text
        assert "RUN ssh-keygen -A" in text
        assert text.rstrip().endswith('CMD ["/usr/sbin/sshd", "-D"]')
        assert "EXPOSE 22" in text

    def test_scripts_copied_in_order(self, context: Path, runner: FakeRunner, scripts):
        text = _render(ImageBuilder(runner, context), ProvisioningConfig(scripts=scripts))
        first = text.index("COPY ./script_0_setup.sh /usr/local/scripts/setup.sh")
        second = text.index("COPY ./script_1_setup.sh /usr/local/scripts/setup.sh")
        assert first < second
        assert text.count("RUN chmod +x /usr/local/scripts/setup.sh") == 2

    def test_init_script_replaces_startup_command(
        self, context: Path, runner: FakeRunner, scripts
    ):
        config = ProvisioningConfig(init_script=scripts[0])
        text = _render(ImageBuilder(runner, context), config)
        assert "COPY ./init_script.sh /usr/local/bin/init.sh" in text
        assert "exec /usr/sbin/sshd -D" in text
        assert text.rstrip().endswith('CMD ["/usr/local/bin/startup.sh"]')
        assert 'CMD ["/usr/sbin/sshd", "-D"]' not in text

    def test_custom_instructions_verbatim_before_expose(self, context: Path, runner: FakeRunner):
        raw = "ENV FOO=bar\nRUN touch /marker"
        config = ProvisioningConfig(dockerfile_instructions=raw)
        text = _render(ImageBuilder(runner, context), config)
        assert raw in text
        assert text.index(raw) < text.index("EXPOSE 22")
        assert text.index("RUN ssh-keygen -A") < text.index(raw)


class TestStaging:
    def test_staged_names_embed_index_and_basename(
        self, context: Path, runner: FakeRunner, scripts
    ):
        config = ProvisioningConfig(scripts=scripts, init_script=scripts[1])
        staged = ImageBuilder(runner, context).stage_inputs(config, StagedInputs(context))
        assert staged.scripts == [
            ("script_0_setup.sh", "setup.sh"),
            ("script_1_setup.sh", "setup.sh"),
        ]
        assert staged.init_script == "init_script.sh"
        assert (context / "script_0_setup.sh").read_text().endswith("echo a\n")
        assert (context / "script_1_setup.sh").read_text().endswith("echo b\n")
        assert (context / "init_script.sh").read_text().endswith("echo b\n")

    def test_missing_script_raises(self, context: Path, runner: FakeRunner, tmp_path: Path):
        config = ProvisioningConfig(scripts=[tmp_path / "nope.sh"])
        with pytest.raises(StagingError, match="nope.sh"):
            ImageBuilder(runner, context).stage_inputs(config, StagedInputs(context))


class TestBuild:
    def test_pull_then_build_and_cleanup(self, context: Path, runner: FakeRunner, scripts):
        config = ProvisioningConfig(scripts=scripts, init_script=scripts[0])
        tag = ImageBuilder(runner, context).build(config)

        assert tag.startswith("orchestrator-")
        assert runner.calls[0] == ("pull", "ubuntu:20.04")
        build = runner.calls[1]
        assert build[:3] == ("build", "-t", tag)
        build_dir = Path(build[3])
        assert build_dir.parent == context
        assert build_dir.name.startswith("podmo-build-")
        assert list(context.iterdir()) == []

    def test_creates_missing_context_dir(self, tmp_path: Path, runner: FakeRunner):
        context = tmp_path / "not" / "yet"
        ImageBuilder(runner, context).build(ProvisioningConfig())
        assert context.is_dir()
        assert list(context.iterdir()) == []

    def test_tag_prefix(self, context: Path, runner: FakeRunner):
        tag = ImageBuilder(runner, context, tag_prefix="lab").build(ProvisioningConfig())
        assert tag.startswith("lab-")

    def test_build_failure_still_cleans_up(self, context: Path, runner: FakeRunner, scripts):
        runner.failing.add("build")
        with pytest.raises(EngineCommandError):
            ImageBuilder(runner, context).build(ProvisioningConfig(scripts=scripts))
        assert list(context.iterdir()) == []

    def test_pull_failure_aborts_before_build(self, context: Path, runner: FakeRunner):
        runner.failing.add("pull")
        with pytest.raises(EngineCommandError):
            ImageBuilder(runner, context).build(ProvisioningConfig())
        assert runner.subcommands() == ["pull"]
        assert list(context.iterdir()) == []

    def test_staging_failure_runs_no_engine_command(
        self, context: Path, runner: FakeRunner, scripts, tmp_path: Path
    ):
        config = ProvisioningConfig(scripts=[scripts[0], tmp_path / "missing.sh"])
        with pytest.raises(StagingError):
            ImageBuilder(runner, context).build(config)
        assert runner.calls == []
        assert list(context.iterdir()) == []

    def test_dockerfile_written_during_build(self, context: Path, scripts):
        seen: dict[str, str] = {}

        class CapturingRunner(FakeRunner):
            def run(self, *args: str) -> str:
                if args[0] == "build":
                    build_dir = Path(args[3])
                    seen["dockerfile"] = (build_dir / "Dockerfile").read_text()
                    seen["script"] = (build_dir / "script_0_setup.sh").read_text()
                return super().run(*args)

        ImageBuilder(CapturingRunner(), context).build(ProvisioningConfig(scripts=scripts[:1]))
        assert "COPY ./script_0_setup.sh" in seen["dockerfile"]
        assert seen["script"].endswith("echo a\n")


class TestBuildContextIsolation:
    """Files already in the context directory survive a build unchanged."""

    def test_init_script_inside_context_dir(self, context: Path):
        init = context / "init_script.sh"
        init.write_text("#!/bin/sh\necho boot\n")
        seen: dict[str, str] = {}

        class CapturingRunner(FakeRunner):
            def run(self, *args: str) -> str:
                if args[0] == "build":
                    seen["init"] = (Path(args[3]) / "init_script.sh").read_text()
                return super().run(*args)

        ImageBuilder(CapturingRunner(), context).build(ProvisioningConfig(init_script=init))

        assert seen["init"] == "#!/bin/sh\necho boot\n"
        assert init.read_text() == "#!/bin/sh\necho boot\n"
        assert list(context.iterdir()) == [init]

    def test_existing_files_untouched(self, context: Path, runner: FakeRunner, tmp_path: Path):
        (context / "init_script.sh").write_text("USER DATA")
        (context / "Dockerfile").write_text("FROM mine")
        (context / "script_0_setup.sh").write_text("keep me")
        boot = tmp_path / "boot.sh"
        boot.write_text("#!/bin/sh\necho other\n")
        setup = tmp_path / "setup.sh"
        setup.write_text("#!/bin/sh\n")

        config = ProvisioningConfig(scripts=[setup], init_script=boot)
        ImageBuilder(runner, context).build(config)

        assert (context / "init_script.sh").read_text() == "USER DATA"
        assert (context / "Dockerfile").read_text() == "FROM mine"
        assert (context / "script_0_setup.sh").read_text() == "keep me"
        assert sorted(p.name for p in context.iterdir()) == [
            "Dockerfile",
            "init_script.sh",
            "script_0_setup.sh",
        ]

    def test_failed_build_leaves_existing_files(self, context: Path, runner: FakeRunner):
        (context / "Dockerfile").write_text("FROM mine")
        runner.failing.add("build")
        with pytest.raises(EngineCommandError):
            ImageBuilder(runner, context).build(ProvisioningConfig())
        assert [p.name for p in context.iterdir()] == ["Dockerfile"]
        assert (context / "Dockerfile").read_text() == "FROM mine"
