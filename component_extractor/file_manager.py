"""Local file operations: artifact filtering and atomic extraction."""

import hashlib
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List

from .errors import ExtractionFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractedArtifact:
    """A local artifact file, byte-identical to its container source."""

    name: str
    path: Path
    size_bytes: int
    sha256: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "path": str(self.path),
            "size_bytes": self.size_bytes,
            "sha256": self.sha256,
        }


def file_digest(file_path: Path, chunk_size: int = 1 << 16) -> str:
    """SHA-256 hex digest of a file."""
    digest = hashlib.sha256()
    with file_path.open("rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def list_examples(examples_dir: Path) -> List[str]:
    """Names of the example projects, one per subdirectory, sorted."""
    examples_dir = Path(examples_dir)
    if not examples_dir.is_dir():
        return []
    return sorted(p.name for p in examples_dir.iterdir() if p.is_dir())


class FileManager:
    """Manages the caller-side files of an extraction."""

    def __init__(self, destination: Path) -> None:
        """
        Initialize file manager.

        Args:
            destination: Directory receiving extracted artifacts
        """
        self.destination = Path(destination)

    @staticmethod
    def filter_artifacts(entries: Iterable[str], suffix: str) -> List[str]:
        """
        Keep directory entries that name binary artifacts.

        Listing order is preserved and repeated names are dropped.
        """
        artifacts: List[str] = []
        for entry in entries:
            name = entry.strip()
            if name in ("", ".", "..") or name in artifacts:
                continue
            if name.endswith(suffix) and len(name) > len(suffix):
                artifacts.append(name)
        return artifacts

    @staticmethod
    def is_safe_name(name: str) -> bool:
        """Check that an artifact name is a plain file name."""
        return (
            bool(name)
            and name not in (".", "..")
            and "/" not in name
            and os.sep not in name
            and "\x00" not in name
        )

    def extract_artifact(
        self, name: str, copy: Callable[[Path], None]
    ) -> ExtractedArtifact:
        """
        Extract one artifact into ``destination/name``.

        ``copy`` writes the artifact bytes to the path it is given. The copy
        lands in a temporary file next to the target which then replaces any
        existing file of the same name, so a failed copy never leaves a
        partial artifact behind.
        """
        if not self.is_safe_name(name):
            raise ExtractionFailure(f"Refusing unsafe artifact name {name!r}", name)

        target = self.destination / name
        try:
            self.destination.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{name}.", suffix=".part", dir=self.destination
            )
            os.close(fd)
        except OSError as e:
            raise ExtractionFailure(
                f"Cannot prepare {target}", name, detail=str(e)
            ) from e

        tmp_path = Path(tmp_name)
        try:
            copy(tmp_path)
            if not tmp_path.is_file():
                raise ExtractionFailure(f"Copy of {name} produced no file", name)
            size = tmp_path.stat().st_size
            digest = file_digest(tmp_path)
            os.replace(tmp_path, target)
        except OSError as e:
            raise ExtractionFailure(
                f"Writing {target} failed", name, detail=str(e)
            ) from e
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

        logger.debug("Wrote %s (%d bytes, sha256 %s)", target, size, digest)
        return ExtractedArtifact(name=name, path=target, size_bytes=size, sha256=digest)
