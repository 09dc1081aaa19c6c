"""Pipeline orchestration: generation, image build, extraction and cleanup."""

import json
import logging
import signal
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from .config import BuildRequest, PipelineSettings
from .docker_manager import ContainerHandle, DockerManager
from .errors import PipelineError, PipelineInterrupted
from .file_manager import ExtractedArtifact, FileManager

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """Setup logging configuration."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


class PipelineState(str, Enum):
    INIT = "Init"
    GENERATING = "Generating"
    IMAGE_BUILDING = "ImageBuilding"
    CONTAINER_CREATED = "ContainerCreated"
    DISCOVERING = "Discovering"
    EXTRACTING = "Extracting"
    CLEANING_UP = "CleaningUp"
    DONE = "Done"
    FAILED = "Failed"


@dataclass
class PipelineContext:
    """Values handed from one stage to the next."""

    request: BuildRequest
    project_dir: Optional[Path] = None
    image: Optional[str] = None
    container: Optional[ContainerHandle] = None
    artifacts: List[str] = field(default_factory=list)
    extracted: List[ExtractedArtifact] = field(default_factory=list)


@dataclass
class PipelineResult:
    """Outcome of one pipeline run."""

    context: PipelineContext
    state: PipelineState = PipelineState.INIT
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.INIT])
    error: Optional[BaseException] = None
    warnings: List[str] = field(default_factory=list)
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    @property
    def success(self) -> bool:
        return self.state is PipelineState.DONE

    @property
    def interrupted(self) -> bool:
        return isinstance(self.error, KeyboardInterrupt)

    @property
    def exit_code(self) -> int:
        if self.success:
            return 0
        return 130 if self.interrupted else 1

    @property
    def error_stage(self) -> Optional[str]:
        if self.error is None:
            return None
        return getattr(self.error, "stage", type(self.error).__name__)

    @property
    def duration_seconds(self) -> float:
        if self.start_time is None or self.end_time is None:
            return 0.0
        return round(self.end_time - self.start_time, 2)

    def to_dict(self) -> Dict[str, object]:
        ctx = self.context
        return {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "state": self.state.value,
            "history": [s.value for s in self.history],
            "request": ctx.request.model_dump(mode="json"),
            "image": ctx.image,
            "container_id": ctx.container.container_id if ctx.container else None,
            "container_removed": ctx.container.removed if ctx.container else None,
            "discovered": list(ctx.artifacts),
            "artifacts": [a.to_dict() for a in ctx.extracted],
            "error": (
                {"stage": self.error_stage, "message": str(self.error)}
                if self.error is not None
                else None
            ),
            "warnings": list(self.warnings),
            "duration_seconds": self.duration_seconds,
        }

    def save_report(self, report_path: Union[str, Path]) -> Path:
        """Save the run report as JSON."""
        report_path = Path(report_path)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        with report_path.open("w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info("Run report saved to: %s", report_path)
        return report_path


def generate_wrapper(docker: DockerManager, ctx: PipelineContext) -> Path:
    """Generate the wrapper crate."""
    request = ctx.request
    logger.info(
        "Generating wrapper crate for %s from %s into %s",
        request.example_name,
        request.js_entry_path,
        request.output_dir,
    )
    return docker.run_generator(request)


def build_project_image(docker: DockerManager, ctx: PipelineContext) -> str:
    """Build the compiled-project image from the generated project."""
    logger.info("Building image %s from %s", docker.settings.project_image, ctx.project_dir)
    return docker.build_image(ctx.project_dir)


def discover_artifacts(
    docker: DockerManager, settings: PipelineSettings, ctx: PipelineContext
) -> List[str]:
    """List the release directory of the image and keep the artifacts."""
    logger.info("Listing %s in %s", settings.release_path, ctx.image)
    entries = docker.list_directory(ctx.image, settings.release_path)
    artifacts = FileManager.filter_artifacts(entries, settings.artifact_suffix)
    logger.info("Discovered %d artifact(s): %s", len(artifacts), ", ".join(artifacts))
    return artifacts


def extract_artifacts(
    docker: DockerManager,
    file_manager: FileManager,
    settings: PipelineSettings,
    ctx: PipelineContext,
) -> List[ExtractedArtifact]:
    """Copy every discovered artifact out of the container, stopping at the first failure."""
    container_id = ctx.container.container_id
    for name in ctx.artifacts:
        source = f"{settings.release_path.rstrip('/')}/{name}"
        artifact = file_manager.extract_artifact(
            name, partial(docker.copy_from_container, container_id, source)
        )
        ctx.extracted.append(artifact)
        logger.info("Extracted %s (%d bytes)", artifact.path, artifact.size_bytes)
    return ctx.extracted


def _raise_interrupted(signum, frame) -> None:
    raise PipelineInterrupted(f"terminated by signal {signum}")


@contextmanager
def _sigterm_as_interrupt() -> Iterator[None]:
    """Turn SIGTERM into ``PipelineInterrupted`` for the duration of a run."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = signal.signal(signal.SIGTERM, _raise_interrupted)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


class ArtifactPipeline:
    """Runs the build pipeline for a single request."""

    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        docker: Optional[DockerManager] = None,
        file_manager: Optional[FileManager] = None,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            settings: Build environment conventions
            docker: Docker manager, created from ``settings`` when omitted
            file_manager: Local file manager, defaults to ``settings.destination``
        """
        self.settings = settings or PipelineSettings()
        self.docker = docker or DockerManager(self.settings)
        self.file_manager = file_manager or FileManager(self.settings.destination)

    def _enter(self, result: PipelineResult, state: PipelineState) -> None:
        logger.debug("%s -> %s", result.state.value, state.value)
        result.state = state
        result.history.append(state)

    def run(self, request: BuildRequest) -> PipelineResult:
        """
        Run every stage for ``request``.

        Stage errors never escape: the first fatal error ends the run in
        ``Failed``. Once the container exists it is removed on every exit
        path, and a failed removal only adds a warning.
        """
        ctx = PipelineContext(request=request)
        result = PipelineResult(context=ctx, start_time=time.time())

        with _sigterm_as_interrupt():
            try:
                self._enter(result, PipelineState.GENERATING)
                ctx.project_dir = generate_wrapper(self.docker, ctx)

                self._enter(result, PipelineState.IMAGE_BUILDING)
                ctx.image = build_project_image(self.docker, ctx)

                with self.docker.ephemeral_container(ctx.image) as container:
                    ctx.container = container
                    self._enter(result, PipelineState.CONTAINER_CREATED)
                    try:
                        self._enter(result, PipelineState.DISCOVERING)
                        ctx.artifacts = discover_artifacts(self.docker, self.settings, ctx)
                        if not ctx.artifacts and self.settings.warn_on_empty:
                            message = (
                                f"No '*{self.settings.artifact_suffix}' artifacts found "
                                f"in {self.settings.release_path}"
                            )
                            logger.warning(message)
                            result.warnings.append(message)

                        self._enter(result, PipelineState.EXTRACTING)
                        extract_artifacts(self.docker, self.file_manager, self.settings, ctx)
                    finally:
                        self._enter(result, PipelineState.CLEANING_UP)

                self._enter(result, PipelineState.DONE)

            except PipelineError as e:
                logger.error("%s", e)
                result.error = e
                self._enter(result, PipelineState.FAILED)

            except KeyboardInterrupt as e:
                if not isinstance(e, PipelineInterrupted):
                    e = PipelineInterrupted("interrupted by user")
                logger.error("Pipeline %s", e)
                result.error = e
                self._enter(result, PipelineState.FAILED)

            finally:
                if ctx.container is not None and ctx.container.cleanup_error:
                    result.warnings.append(str(ctx.container.cleanup_error))
                result.end_time = time.time()

        if self.settings.report_file is not None:
            result.save_report(self.settings.report_file)

        return result
