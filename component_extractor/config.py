"""Configuration models with Pydantic validation."""

import json
import re
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

_IMAGE_TAG = re.compile(r"^[a-z0-9][a-z0-9._/-]*(:[A-Za-z0-9_][A-Za-z0-9_.-]*)?$")
_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _is_safe_name(value: str) -> bool:
    return bool(value) and value.replace("-", "").replace("_", "").replace(
        ".", ""
    ).isalnum()


class BuildRequest(BaseModel):
    """Immutable description of one pipeline run."""

    model_config = ConfigDict(frozen=True)

    example_name: str = Field(..., description="Name of the example project")
    js_entry_path: Path = Field(..., description="JavaScript module to wrap")
    wit_dir_path: Path = Field(..., description="WIT package directory")
    output_dir: Path = Field(
        default=Path("dist"), description="Directory receiving the wrapper crate"
    )
    include_cargo_config: bool = Field(
        default=True, description="Generate .cargo/config.toml in the wrapper crate"
    )
    world: Optional[str] = Field(None, description="WIT world to use")

    @field_validator("example_name")
    @classmethod
    def validate_example_name(cls, v: str) -> str:
        """Validate example name for filesystem safety."""
        if v in (".", "..") or not _is_safe_name(v):
            raise ValueError(
                "Example name must contain only alphanumeric characters, hyphens, underscores, and dots"
            )
        return v

    @classmethod
    def for_example(
        cls,
        name: str,
        examples_dir: Union[str, Path] = "examples",
        output_dir: Union[str, Path] = "dist",
        include_cargo_config: bool = True,
        world: Optional[str] = None,
    ) -> "BuildRequest":
        """
        Build a request using the example directory convention.

        The entry module is ``<examples_dir>/<name>/src/<name>.js`` and the
        WIT package is ``<examples_dir>/<name>/wit/``.
        """
        example_root = Path(examples_dir) / name
        return cls(
            example_name=name,
            js_entry_path=example_root / "src" / f"{name}.js",
            wit_dir_path=example_root / "wit",
            output_dir=Path(output_dir),
            include_cargo_config=include_cargo_config,
            world=world,
        )

    @property
    def examples_dir(self) -> Path:
        """Directory holding all examples (mounted read-only into the generator)."""
        return self.wit_dir_path.parent.parent


class PipelineSettings(BaseModel):
    """Run-independent conventions of the build environment."""

    docker_binary: str = Field(default="docker", description="Docker CLI executable")
    tool_image: str = Field(
        default="wasm-rquickjs-test", description="Image running the generator"
    )
    project_image: str = Field(
        default="wasm-rquickjs-project", description="Tag of the compiled project image"
    )
    project_dockerfile: str = Field(
        default="Dockerfile.project",
        description="Build description inside the generated project",
    )
    release_path: str = Field(
        default="/target-dist/wasm32-wasip1/release",
        description="Release output directory inside the project image",
    )
    artifact_suffix: str = Field(
        default=".wasm", description="Suffix identifying binary artifacts"
    )
    container_workdir: str = Field(
        default="/app", description="Mount root inside the generator container"
    )
    destination: Path = Field(
        default=Path("."), description="Directory receiving extracted artifacts"
    )
    warn_on_empty: bool = Field(
        default=True, description="Log a warning when no artifacts are discovered"
    )
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[Path] = Field(None, description="Additional log file")
    report_file: Optional[Path] = Field(None, description="JSON run report path")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        if v.upper() not in _VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {_VALID_LOG_LEVELS}")
        return v.upper()

    @field_validator("tool_image", "project_image")
    @classmethod
    def validate_image(cls, v: str) -> str:
        """Validate Docker image tag format."""
        if not _IMAGE_TAG.match(v):
            raise ValueError(f"Invalid image tag: '{v}'")
        return v

    @field_validator("release_path", "container_workdir")
    @classmethod
    def validate_absolute(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("Container paths must be absolute")
        return v.rstrip("/") or "/"

    @field_validator("artifact_suffix")
    @classmethod
    def validate_suffix(cls, v: str) -> str:
        if not v.startswith(".") or len(v) < 2 or "/" in v:
            raise ValueError("artifact_suffix must look like '.ext'")
        return v


class PipelineConfig(BaseModel):
    """Complete pipeline configuration."""

    settings: PipelineSettings = Field(
        default_factory=PipelineSettings, description="Build environment settings"
    )
    request: Optional[BuildRequest] = Field(
        None, description="Optional preconfigured build request"
    )

    @classmethod
    def from_json(cls, config_path: Union[str, Path]) -> "PipelineConfig":
        """Load configuration from JSON file."""
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with config_path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {e}")

        return cls.model_validate(data)

    def to_json(self, config_path: Union[str, Path], indent: int = 2) -> None:
        """Save configuration to JSON file."""
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with config_path.open("w", encoding="utf-8") as f:
            json.dump(self.model_dump(mode="json"), f, indent=indent)
