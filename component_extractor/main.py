"""CLI entry point for the component extractor."""

import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import BuildRequest, PipelineConfig
from .docker_manager import DockerError, DockerManager
from .file_manager import list_examples
from .pipeline import ArtifactPipeline, PipelineResult, setup_logging

console = Console()
err_console = Console(stderr=True)


@click.group()
def cli() -> None:
    """Build WebAssembly components in Docker and extract the binaries."""
    pass


@cli.command()
@click.argument("example", required=False)
@click.option(
    "--examples-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default="examples",
    help="Directory containing the example projects",
)
@click.option(
    "--output-dir",
    "-o",
    type=click.Path(file_okay=False, path_type=Path),
    default="dist",
    help="Directory for the generated wrapper crate (default: dist)",
)
@click.option(
    "--include-cargo-config/--no-include-cargo-config",
    default=True,
    help="Generate .cargo/config.toml in the wrapper crate",
)
@click.option("--world", default=None, help="WIT world to use")
@click.option("--tool-image", default=None, help="Generator image tag (overrides config)")
@click.option(
    "--project-image", default=None, help="Compiled project image tag (overrides config)"
)
@click.option(
    "--dest",
    "-d",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory receiving the artifacts (default: current directory)",
)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file path",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log level (overrides config)",
)
@click.option(
    "--log-file", type=click.Path(dir_okay=False, path_type=Path), default=None
)
@click.option(
    "--report",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write a JSON run report to this file",
)
@click.option(
    "--fail-on-empty", is_flag=True, help="Exit non-zero when no artifacts are found"
)
def build(
    example: Optional[str],
    examples_dir: Path,
    output_dir: Path,
    include_cargo_config: bool,
    world: Optional[str],
    tool_image: Optional[str],
    project_image: Optional[str],
    dest: Optional[Path],
    config: Optional[Path],
    log_level: Optional[str],
    log_file: Optional[Path],
    report: Optional[Path],
    fail_on_empty: bool,
) -> None:
    """
    Generate, compile and extract the artifacts of EXAMPLE.

    The wrapper crate is generated from examples/EXAMPLE/src/EXAMPLE.js and
    examples/EXAMPLE/wit/, built into an image, and every release artifact
    is copied into the destination directory, replacing existing files.
    """
    try:
        pipeline_config = PipelineConfig.from_json(config) if config else PipelineConfig()

        overrides = {
            "tool_image": tool_image,
            "project_image": project_image,
            "destination": dest,
            "log_level": log_level,
            "log_file": log_file,
            "report_file": report,
        }
        settings = pipeline_config.settings.model_validate(
            {
                **pipeline_config.settings.model_dump(),
                **{k: v for k, v in overrides.items() if v is not None},
            }
        )

        if example is not None:
            request = BuildRequest.for_example(
                example,
                examples_dir=examples_dir,
                output_dir=output_dir,
                include_cargo_config=include_cargo_config,
                world=world,
            )
        elif pipeline_config.request is not None:
            request = pipeline_config.request
        else:
            raise click.UsageError("EXAMPLE is required unless the config defines a request")
    except FileNotFoundError as e:
        err_console.print(f"[red]❌ Configuration file not found: {escape(str(e))}[/red]")
        sys.exit(1)
    except ValueError as e:
        err_console.print(f"[red]❌ Configuration error: {escape(str(e))}[/red]")
        sys.exit(1)

    setup_logging(settings.log_level, settings.log_file)

    try:
        docker = DockerManager(settings)
    except DockerError as e:
        err_console.print(f"[red]❌ \\[docker] {escape(str(e))}[/red]")
        sys.exit(1)

    with docker:
        result = ArtifactPipeline(settings, docker=docker).run(request)

    if result.success and fail_on_empty and not result.context.extracted:
        _print_result(result, show_status=False)
        err_console.print("[red]❌ No artifacts were extracted[/red]")
        sys.exit(1)

    _print_result(result)
    if result.exit_code != 0:
        sys.exit(result.exit_code)


def _print_result(result: PipelineResult, show_status: bool = True) -> None:
    """Print a summary of a pipeline run."""
    table = Table(title=f"Artifacts of {result.context.request.example_name}")
    table.add_column("Artifact", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("SHA-256", style="dim")
    for artifact in result.context.extracted:
        table.add_row(str(artifact.path), f"{artifact.size_bytes:,}", artifact.sha256[:16])

    if result.context.extracted:
        console.print(table)

    for warning in result.warnings:
        err_console.print(f"[yellow]⚠️ {escape(warning)}[/yellow]")

    if not show_status:
        return
    if result.success:
        console.print(
            f"[green]✅ Extracted {len(result.context.extracted)} artifact(s) "
            f"in {result.duration_seconds:.1f}s[/green]"
        )
    else:
        err_console.print(f"[red]❌ {escape(str(result.error))}[/red]")


@cli.command("list-examples")
@click.option(
    "--examples-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default="examples",
    help="Directory containing the example projects",
)
def list_examples_command(examples_dir: Path) -> None:
    """List the available example projects."""
    names = list_examples(examples_dir)
    if not names:
        err_console.print(f"[yellow]No examples found in {examples_dir}[/yellow]")
        return
    for name in names:
        click.echo(name)


@cli.command()
@click.argument("config_file", type=click.Path(path_type=Path))
def validate(config_file: Path) -> None:
    """Validate a configuration file."""
    try:
        config = PipelineConfig.from_json(config_file)
    except (FileNotFoundError, ValueError, ValidationError) as e:
        err_console.print(f"[red]❌ Configuration error: {escape(str(e))}[/red]")
        sys.exit(1)

    console.print("✅ Configuration is valid!")
    _print_config_summary(config)


def _print_config_summary(config: PipelineConfig) -> None:
    """Print configuration summary."""
    table = Table(title="Configuration Summary", show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in config.settings.model_dump().items():
        table.add_row(key, str(value))
    if config.request is not None:
        table.add_row("example", config.request.example_name)
        table.add_row("js", str(config.request.js_entry_path))
        table.add_row("wit", str(config.request.wit_dir_path))
    console.print(table)


if __name__ == "__main__":
    cli()
