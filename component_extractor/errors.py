"""Stage-labeled pipeline errors."""

from typing import Optional


class PipelineError(Exception):
    """Failure of a single pipeline stage."""

    stage = "pipeline"
    fatal = True

    def __init__(self, message: str, detail: Optional[str] = None) -> None:
        self.message = message
        self.detail = detail.strip() if detail else None
        super().__init__(message)

    def __str__(self) -> str:
        text = f"[{self.stage}] {self.message}"
        if self.detail:
            text += f": {self.detail}"
        return text


class GenerationFailure(PipelineError):
    stage = "generation"


class ImageBuildFailure(PipelineError):
    stage = "image-build"


class ContainerCreateFailure(PipelineError):
    stage = "container-create"


class ListingFailure(PipelineError):
    stage = "listing"


class ExtractionFailure(PipelineError):
    """Copying one artifact out of the container failed."""

    stage = "extraction"

    def __init__(
        self, message: str, artifact: str, detail: Optional[str] = None
    ) -> None:
        self.artifact = artifact
        super().__init__(message, detail)


class CleanupFailure(PipelineError):
    """Removing the build container failed. Reported, never fatal."""

    stage = "cleanup"
    fatal = False


class PipelineInterrupted(KeyboardInterrupt):
    """Raised from the termination handler so scoped cleanup still runs."""

    stage = "interrupted"
