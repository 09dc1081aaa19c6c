"""Command-line behaviour and exit codes."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from component_extractor import main
from component_extractor.config import BuildRequest, PipelineConfig, PipelineSettings
from component_extractor.docker_manager import DockerError, DockerManager


@pytest.fixture
def run_cli(monkeypatch: pytest.MonkeyPatch, docker_fake):
    """Invoke the CLI with docker replaced by a scripted runner."""
    monkeypatch.setattr(main, "setup_logging", lambda level, log_file=None: None)

    def _run(args: list[str], fake=None):
        fake = fake if fake is not None else docker_fake()
        monkeypatch.setattr(
            main,
            "DockerManager",
            lambda settings: DockerManager(settings, runner=fake, verify=False),
        )
        return CliRunner().invoke(main.cli, args), fake

    return _run


def test_build_extracts_artifact(workspace: Path, run_cli, docker_fake) -> None:
    result, fake = run_cli(["build", "demo"], docker_fake(artifacts={"demo.wasm": b"bin"}))

    assert result.exit_code == 0, result.output
    assert (workspace / "demo.wasm").read_bytes() == b"bin"
    assert "Extracted 1 artifact(s)" in result.output


def test_build_missing_example_exits_nonzero(workspace: Path, run_cli) -> None:
    result, fake = run_cli(["build", "nosuch"])

    assert result.exit_code == 1
    assert "[generation]" in result.output
    assert fake.commands("create") == []


def test_build_extraction_failure_exit_code(workspace: Path, run_cli, docker_fake) -> None:
    fake = docker_fake(
        artifacts={"modA.wasm": b"a", "modB.wasm": b"b"}, fail={"cp:modB.wasm"}
    )

    result, fake = run_cli(["build", "demo"], fake)

    assert result.exit_code == 1
    assert "[extraction]" in result.output
    assert len(fake.commands("rm")) == 1


def test_build_empty_set_and_fail_on_empty(workspace: Path, run_cli) -> None:
    result, _ = run_cli(["build", "demo"])
    assert result.exit_code == 0
    assert "No '*.wasm' artifacts" in result.output

    result, _ = run_cli(["build", "demo", "--fail-on-empty"])
    assert result.exit_code == 1


def test_build_options_reach_pipeline(workspace: Path, run_cli, docker_fake) -> None:
    fake = docker_fake(artifacts={"demo.wasm": b"bin"})

    result, fake = run_cli(
        [
            "build",
            "demo",
            "--no-include-cargo-config",
            "--world",
            "guest",
            "--project-image",
            "custom-project:dev",
            "--dest",
            "artifacts",
            "--report",
            "report.json",
        ],
        fake,
    )

    assert result.exit_code == 0, result.output
    assert (workspace / "artifacts" / "demo.wasm").read_bytes() == b"bin"
    generate = fake.commands("generate")[0]
    assert "--include-cargo-config" not in generate
    assert generate[-2:] == ["--world", "guest"]
    assert fake.commands("create") == [["docker", "create", "custom-project:dev"]]
    report = json.loads((workspace / "report.json").read_text())
    assert report["state"] == "Done"


def test_build_uses_request_from_config(workspace: Path, run_cli, docker_fake) -> None:
    config = PipelineConfig(
        settings=PipelineSettings(destination=Path("out")),
        request=BuildRequest.for_example("demo"),
    )
    config.to_json(workspace / "pipeline.json")

    result, _ = run_cli(
        ["build", "--config", "pipeline.json"], docker_fake(artifacts={"demo.wasm": b"x"})
    )

    assert result.exit_code == 0, result.output
    assert (workspace / "out" / "demo.wasm").exists()


def test_build_without_example_or_request(workspace: Path, run_cli) -> None:
    result, _ = run_cli(["build"])

    assert result.exit_code == 2
    assert "EXAMPLE is required" in result.output


def test_build_reports_docker_unavailable(
    workspace: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(main, "setup_logging", lambda level, log_file=None: None)

    def unavailable(settings):
        raise DockerError("Docker command not found. Please install Docker.")

    monkeypatch.setattr(main, "DockerManager", unavailable)

    result = CliRunner().invoke(main.cli, ["build", "demo"])

    assert result.exit_code == 1
    assert "[docker]" in result.output


def test_build_rejects_bad_config(workspace: Path, run_cli) -> None:
    (workspace / "pipeline.json").write_text(json.dumps({"settings": {"log_level": "LOUD"}}))

    result, fake = run_cli(["build", "demo", "--config", "pipeline.json"])

    assert result.exit_code == 1
    assert "Configuration error" in result.output
    assert fake.calls == []


def test_list_examples(workspace: Path) -> None:
    (workspace / "examples" / "other").mkdir()

    result = CliRunner().invoke(main.cli, ["list-examples"])

    assert result.exit_code == 0
    assert result.output.splitlines() == ["demo", "other"]


def test_validate(workspace: Path) -> None:
    PipelineConfig().to_json(workspace / "pipeline.json")

    ok = CliRunner().invoke(main.cli, ["validate", "pipeline.json"])
    missing = CliRunner().invoke(main.cli, ["validate", "missing.json"])

    assert ok.exit_code == 0
    assert "Configuration is valid" in ok.output
    assert missing.exit_code == 1


def test_fail_on_empty_prints_no_success_line(workspace: Path, run_cli) -> None:
    result, _ = run_cli(["build", "demo", "--fail-on-empty"])

    assert result.exit_code == 1
    assert "No artifacts were extracted" in result.output
    assert "Extracted 0 artifact(s)" not in result.output


def test_build_closes_docker_manager(
    workspace: Path, monkeypatch: pytest.MonkeyPatch, docker_fake
) -> None:
    monkeypatch.setattr(main, "setup_logging", lambda level, log_file=None: None)
    fake = docker_fake(artifacts={"demo.wasm": b"bin"})
    managers: list[DockerManager] = []

    class TrackingManager(DockerManager):
        closed = False

        def __exit__(self, exc_type, exc_val, exc_tb) -> None:
            super().__exit__(exc_type, exc_val, exc_tb)
            self.closed = True

    def factory(settings):
        manager = TrackingManager(settings, runner=fake, verify=False)
        managers.append(manager)
        return manager

    monkeypatch.setattr(main, "DockerManager", factory)

    result = CliRunner().invoke(main.cli, ["build", "demo"])

    assert result.exit_code == 0, result.output
    assert managers[0].closed
    assert len(fake.commands("rm")) == 1
