"""CLI module for pageflow."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import typer
from pydantic import ValidationError

from pageflow import __version__
from pageflow.config import ConfigurationError, load_settings
from pageflow.flow import (
    ImageType,
    ProcessFlowError,
    ProcessFlowOrchestrator,
    ProcessFlowRequest,
    SessionStore,
    Stage,
)
from pageflow.observability import LogLevel, configure_logging


if TYPE_CHECKING:
    from pageflow.config import Settings
    from pageflow.flow import ProcessFlowResult


app = typer.Typer(
    name="pageflow",
    help="Run page-image processing flows for OCR projects.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:  # noqa: FBT001
    """Print version and exit."""
    if value:
        typer.echo(f"pageflow version {__version__}")
        raise typer.Exit


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(  # noqa: FBT001
        False,  # noqa: FBT003
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(  # noqa: FBT001
        False,  # noqa: FBT003
        "--verbose",
        "-V",
        help="Enable verbose (debug) logging.",
    ),
    quiet: bool = typer.Option(  # noqa: FBT001
        False,  # noqa: FBT003
        "--quiet",
        "-q",
        help="Only show warnings and errors.",
    ),
) -> None:
    """pageflow CLI."""
    del version  # Handled by callback

    if verbose and quiet:
        typer.echo("Error: --verbose and --quiet are mutually exclusive.", err=True)
        raise typer.Exit(1)

    level: LogLevel | None = None
    if verbose:
        level = LogLevel.DEBUG
    elif quiet:
        level = LogLevel.WARNING

    # Flags win over the configured level once settings are loaded.
    ctx.obj = {"log_level": level}
    configure_logging(level=level or LogLevel.INFO)


def _load_settings(ctx: typer.Context, config_file: Path | None) -> Settings:
    """Load settings and reconfigure logging from them.

    Exits with status 2 on configuration errors.
    """
    try:
        settings = load_settings(config_file)
    except ConfigurationError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(2) from exc

    flag_level = (ctx.obj or {}).get("log_level")
    configure_logging(
        level=flag_level or settings.observability.logging.level,
        log_format=settings.observability.logging.format,
    )
    return settings


def _config_option() -> Any:
    return typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file.",
        dir_okay=False,
    )


@app.command()
def serve(
    ctx: typer.Context,
    host: str | None = typer.Option(None, "--host", "-h", help="Host to bind to."),
    port: int | None = typer.Option(None, "--port", "-p", help="Port to bind to."),
    config_file: Path | None = _config_option(),
) -> None:
    """Start the web API server."""
    import uvicorn

    from pageflow.web import create_app

    settings = _load_settings(ctx, config_file)
    application = create_app(settings=settings)

    uvicorn.run(
        application,
        host=host or settings.web.host,
        port=port or settings.web.port,
        log_config=None,
    )


async def _run_flow(
    settings: Settings,
    request: ProcessFlowRequest,
    project_dir: Path,
    image_type: ImageType,
) -> ProcessFlowResult:
    """Run one process flow in a throwaway session."""
    from pageflow.stages import create_registry

    orchestrator = ProcessFlowOrchestrator(registry=create_registry(settings))
    store = SessionStore()
    session = await store.get_or_create(SessionStore.generate_id())
    await session.set_project(project_dir, image_type)
    return await orchestrator.execute(request, session)


@app.command()
def run(
    ctx: typer.Context,
    request_file: str = typer.Argument(
        ...,
        metavar="REQUEST_JSON",
        help="Process flow request as a JSON file, or '-' for stdin.",
    ),
    project_dir: Path = typer.Option(
        ...,
        "--project-dir",
        "-d",
        help="Project root directory.",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    image_type: ImageType = typer.Option(
        ImageType.BINARY,
        "--image-type",
        "-t",
        help="Image type of the project's pages.",
    ),
    config_file: Path | None = _config_option(),
) -> None:
    """Run a process flow once and print its result.

    Exits with 0 if the flow ended with status 200, 1 otherwise.
    """
    settings = _load_settings(ctx, config_file)

    try:
        if request_file == "-":
            raw = sys.stdin.read()
        else:
            raw = Path(request_file).read_text(encoding="utf-8")
    except OSError as exc:
        typer.echo(f"Cannot read request: {exc}", err=True)
        raise typer.Exit(1) from exc

    try:
        request = ProcessFlowRequest.model_validate_json(raw)
    except ValidationError as exc:
        typer.echo(f"Invalid request: {exc}", err=True)
        raise typer.Exit(1) from exc

    try:
        result = asyncio.run(_run_flow(settings, request, project_dir, image_type))
    except ProcessFlowError as exc:
        output = {
            "status_code": exc.status_code,
            "success": False,
            "detail": str(exc),
            "error_type": type(exc).__name__,
        }
        typer.echo(json.dumps(output, indent=2))
        raise typer.Exit(1) from exc

    typer.echo(json.dumps(result.to_dict(), indent=2))
    if not result.success:
        raise typer.Exit(1)


@app.command()
def config(
    ctx: typer.Context,
    config_file: Path | None = _config_option(),
) -> None:
    """Validate the configuration and list the stage commands."""
    settings = _load_settings(ctx, config_file)

    typer.echo("Configuration OK")
    for stage in Stage:
        command = settings.stages.for_stage(stage).command
        shown = " ".join(command) if command else "(not configured)"
        typer.echo(f"  {stage.value}: {shown}")


__all__ = ["app"]
