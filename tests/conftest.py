"""Shared fixtures: a scripted stand-in for the docker CLI."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from component_extractor.config import PipelineSettings
from component_extractor.docker_manager import DockerManager
from component_extractor.pipeline import ArtifactPipeline

CONTAINER_ID = "f00dcafe1234"


class FakeDocker:
    """Command runner that answers docker CLI calls from memory.

    ``fail`` names commands to fail: ``generate``, ``build``, ``create``,
    ``ls``, ``rm`` or ``cp:<artifact>`` for a single artifact copy.
    """

    def __init__(
        self,
        artifacts: dict[str, bytes] | None = None,
        extra_entries: list[str] | None = None,
        fail: set[str] | None = None,
    ) -> None:
        self.artifacts = dict(artifacts or {})
        self.extra_entries = list(extra_entries or ["build", "deps", "incremental"])
        self.fail = set(fail or ())
        self.calls: list[list[str]] = []

    def commands(self, name: str) -> list[list[str]]:
        return [argv for argv in self.calls if self._key(argv) == name]

    @staticmethod
    def _key(argv: list[str]) -> str:
        verb = argv[1]
        if verb == "run":
            return "generate" if "generate-wrapper-crate" in argv else "ls"
        return verb

    def _result(
        self, argv: list[str], code: int = 0, stdout: str = "", stderr: str = ""
    ) -> subprocess.CompletedProcess:
        return subprocess.CompletedProcess(argv, code, stdout, stderr)

    def __call__(self, argv: list[str]) -> subprocess.CompletedProcess:
        self.calls.append(list(argv))
        key = self._key(argv)

        if key in self.fail:
            return self._result(argv, 1, stderr=f"simulated {key} failure\n")

        if key == "generate":
            host_output = argv[argv.index("-v") + 1].rsplit(":", 1)[0]
            project = Path(host_output)
            (project / "Cargo.toml").write_text('[package]\nname = "wrapper"\n')
            return self._result(argv)

        if key == "create":
            return self._result(argv, stdout=CONTAINER_ID + "\n")

        if key == "ls":
            entries = [".", "..", *self.extra_entries, *self.artifacts]
            return self._result(argv, stdout="\n".join(entries) + "\n")

        if key == "cp":
            source, destination = argv[2], argv[3]
            container, path = source.split(":", 1)
            name = path.rsplit("/", 1)[-1]
            if f"cp:{name}" in self.fail:
                return self._result(argv, 1, stderr=f"simulated copy failure of {name}\n")
            if container != CONTAINER_ID or name not in self.artifacts:
                return self._result(argv, 1, stderr=f"No such container:path: {source}\n")
            Path(destination).write_bytes(self.artifacts[name])
            return self._result(argv)

        return self._result(argv)


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A project checkout with a ``demo`` example, used as the working directory."""
    example = tmp_path / "examples" / "demo"
    (example / "src").mkdir(parents=True)
    (example / "wit").mkdir()
    (example / "src" / "demo.js").write_text("export const hello = () => 'hi';\n")
    (example / "wit" / "demo.wit").write_text("package demo:pkg;\n")
    (tmp_path / "Dockerfile.project").write_text("FROM rust:latest\n")
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def settings() -> PipelineSettings:
    return PipelineSettings()


@pytest.fixture
def make_pipeline(settings: PipelineSettings):
    def _make(fake: FakeDocker) -> ArtifactPipeline:
        docker = DockerManager(settings, runner=fake, verify=False)
        return ArtifactPipeline(settings, docker=docker)

    return _make


@pytest.fixture
def docker_fake():
    """Factory for :class:`FakeDocker` runners."""
    return FakeDocker
