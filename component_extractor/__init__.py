"""
Component Extractor - Docker-based WebAssembly component build pipeline.

Generates a wrapper crate for a JavaScript module, compiles it inside a
project image and copies the resulting release artifacts out of an
ephemeral container into the caller's working directory.
"""

__version__ = "1.0.0"

from .config import BuildRequest, PipelineConfig, PipelineSettings
from .docker_manager import DockerError, DockerManager
from .errors import (
    CleanupFailure,
    ContainerCreateFailure,
    ExtractionFailure,
    GenerationFailure,
    ImageBuildFailure,
    ListingFailure,
    PipelineError,
)
from .file_manager import ExtractedArtifact, FileManager
from .pipeline import ArtifactPipeline, PipelineResult, PipelineState

__all__ = [
    "BuildRequest",
    "PipelineConfig",
    "PipelineSettings",
    "DockerError",
    "DockerManager",
    "PipelineError",
    "GenerationFailure",
    "ImageBuildFailure",
    "ContainerCreateFailure",
    "ListingFailure",
    "ExtractionFailure",
    "CleanupFailure",
    "ExtractedArtifact",
    "FileManager",
    "ArtifactPipeline",
    "PipelineResult",
    "PipelineState",
]
