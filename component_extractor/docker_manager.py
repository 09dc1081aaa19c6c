"""Docker operations manager with proper error handling."""

import logging
import shutil
import subprocess
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Iterator, List, Optional, Type

from .config import BuildRequest, PipelineSettings
from .errors import (
    CleanupFailure,
    ContainerCreateFailure,
    ExtractionFailure,
    GenerationFailure,
    ImageBuildFailure,
    ListingFailure,
    PipelineError,
)

logger = logging.getLogger(__name__)

CommandRunner = Callable[[List[str]], subprocess.CompletedProcess]


class DockerError(Exception):
    """Docker-specific errors."""

    pass


def run_command(argv: List[str]) -> subprocess.CompletedProcess:
    """Run a command to completion, capturing its output."""
    return subprocess.run(
        argv,
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        check=False,
    )


@dataclass
class ContainerHandle:
    """Opaque handle of an ephemeral build container."""

    container_id: str
    image: str
    removed: bool = False
    cleanup_error: Optional[CleanupFailure] = None


class DockerManager:
    """Drives the docker CLI for each pipeline stage."""

    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        runner: Optional[CommandRunner] = None,
        verify: bool = True,
    ) -> None:
        """
        Initialize Docker manager.

        Args:
            settings: Build environment conventions
            runner: Command runner, defaults to a blocking subprocess call
            verify: Check that Docker is installed and the daemon responds
        """
        self.settings = settings or PipelineSettings()
        self.runner = runner or run_command
        self._active_containers: List[str] = []
        if verify:
            self._verify_docker()

    @property
    def docker(self) -> str:
        return self.settings.docker_binary

    def _verify_docker(self) -> None:
        """Verify Docker is available and running."""
        if self.runner is run_command and not shutil.which(self.docker):
            raise DockerError("Docker command not found. Please install Docker.")

        try:
            result = self.runner([self.docker, "info"])
        except OSError as e:
            raise DockerError(f"Docker command could not be executed: {e}")
        if result.returncode != 0:
            raise DockerError(f"Docker daemon not running or accessible: {result.stderr}")

    def _run(
        self, argv: List[str], failure: Type[PipelineError], message: str, **kwargs
    ) -> subprocess.CompletedProcess:
        """Run a command and raise ``failure`` on a non-zero exit."""
        logger.debug("Running: %s", " ".join(argv))
        try:
            result = self.runner(argv)
        except OSError as e:
            raise failure(message, detail=str(e), **kwargs) from e
        if result.returncode != 0:
            detail = result.stderr or f"exit status {result.returncode}"
            raise failure(message, detail=detail, **kwargs)
        return result

    def run_generator(self, request: BuildRequest) -> Path:
        """
        Generate the wrapper crate for ``request`` inside the tool image.

        The output directory is mounted read/write and the examples
        directory read-only. Paths handed to the generator are relative to
        the container working directory.

        Returns:
            The generated project directory
        """
        if not request.js_entry_path.is_file():
            raise GenerationFailure(
                f"JavaScript entry module not found: {request.js_entry_path}"
            )
        if not request.wit_dir_path.is_dir():
            raise GenerationFailure(f"WIT directory not found: {request.wit_dir_path}")

        examples_dir = request.examples_dir.resolve()
        try:
            js_rel = request.js_entry_path.resolve().relative_to(examples_dir)
            wit_rel = request.wit_dir_path.resolve().relative_to(examples_dir)
        except ValueError:
            raise GenerationFailure(
                f"Entry module must live under {request.examples_dir}"
            )

        output_dir = request.output_dir
        if output_dir.resolve().name in ("", "examples"):
            raise GenerationFailure(
                f"Output directory {output_dir} cannot be mounted next to the examples"
            )
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise GenerationFailure(
                f"Cannot create output directory {output_dir}", detail=str(e)
            ) from e

        workdir = PurePosixPath(self.settings.container_workdir)
        mounted_output = PurePosixPath(output_dir.resolve().name)
        mounted_examples = PurePosixPath("examples")

        argv = [
            self.docker,
            "run",
            "--rm",
            "-v",
            f"{output_dir.resolve()}:{workdir / mounted_output}",
            "-v",
            f"{examples_dir}:{workdir / mounted_examples}:ro",
            "-w",
            str(workdir),
            self.settings.tool_image,
            "generate-wrapper-crate",
            "--js",
            str(mounted_examples / js_rel.as_posix()),
            "--wit",
            str(mounted_examples / wit_rel.as_posix()),
            "--output",
            str(mounted_output),
        ]
        if request.include_cargo_config:
            argv.append("--include-cargo-config")
        if request.world:
            argv.extend(["--world", request.world])

        self._run(argv, GenerationFailure, "Wrapper crate generation failed")
        return output_dir

    def build_image(self, project_dir: Path) -> str:
        """
        Build the compiled-project image from the generated project.

        Returns:
            The image tag
        """
        dockerfile = Path(self.settings.project_dockerfile)
        if not dockerfile.is_file():
            raise ImageBuildFailure(f"Build description not found: {dockerfile}")

        tag = self.settings.project_image
        self._run(
            [self.docker, "build", "-t", tag, "-f", str(dockerfile), str(project_dir)],
            ImageBuildFailure,
            f"Building image {tag} failed",
        )
        return tag

    def create_container(self, image: str) -> str:
        """
        Create a container without starting it.

        Returns:
            Container ID
        """
        result = self._run(
            [self.docker, "create", image],
            ContainerCreateFailure,
            f"Creating container from {image} failed",
        )
        container_id = result.stdout.strip()
        if not container_id:
            raise ContainerCreateFailure(
                f"Creating container from {image} returned no container id"
            )
        self._active_containers.append(container_id)
        return container_id

    def list_directory(self, image: str, path: str) -> List[str]:
        """List the entries of ``path`` in a transient container of ``image``."""
        result = self._run(
            [self.docker, "run", "--rm", image, "ls", "-1a", path],
            ListingFailure,
            f"Listing {path} in {image} failed",
        )
        return result.stdout.splitlines()

    def copy_from_container(
        self, container_id: str, source: str, destination: Path
    ) -> None:
        """Copy a single file out of a container."""
        self._run(
            [self.docker, "cp", f"{container_id}:{source}", str(destination)],
            ExtractionFailure,
            f"Copying {source} failed",
            artifact=PurePosixPath(source).name,
        )

    def remove_container(self, container_id: str) -> None:
        """Remove a container and its anonymous volumes."""
        if container_id in self._active_containers:
            self._active_containers.remove(container_id)
        self._run(
            [self.docker, "rm", "-v", container_id],
            CleanupFailure,
            f"Removing container {container_id} failed",
        )

    @contextmanager
    def ephemeral_container(self, image: str) -> Iterator[ContainerHandle]:
        """
        Create a container from ``image`` and remove it when the scope exits.

        Removal is attempted exactly once on every exit path. A removal
        failure is logged and stored on the handle, never raised.
        """
        handle = ContainerHandle(container_id=self.create_container(image), image=image)
        logger.info("Created container %s from %s", handle.container_id, image)
        try:
            yield handle
        finally:
            try:
                self.remove_container(handle.container_id)
                handle.removed = True
                logger.info("Removed container %s", handle.container_id)
            except CleanupFailure as e:
                handle.cleanup_error = e
                logger.warning("%s", e)

    def cleanup_all(self) -> None:
        """Clean up all active containers."""
        for container_id in self._active_containers.copy():
            try:
                self.remove_container(container_id)
            except CleanupFailure as e:
                logger.warning("%s", e)

    def __enter__(self) -> "DockerManager":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit with cleanup."""
        self.cleanup_all()
