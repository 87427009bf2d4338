"""Thin CLI wrapper for cello_ops.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import atexit
import json
import logging
from typing import Annotated, NoReturn

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from cello_ops import __version__
from cello_ops.config import Settings, get_settings, print_settings_json
from cello_ops.context import RunConfig, load_run_config
from cello_ops.errors import CelloOpsError, ConfigurationError

app = typer.Typer(
    name="cello",
    help="Cello Ops - build, publish and run the Cello service platform",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"cello-ops version {__version__}")
        raise typer.Exit()


def _settings() -> Settings:
    try:
        return get_settings()
    except ValidationError as e:
        console.print("[red]Invalid configuration:[/red]")
        console.print(str(e), markup=False)
        raise typer.Exit(code=1) from None


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


def _run_config() -> RunConfig:
    return load_run_config(_settings())


def _abort(error: CelloOpsError) -> NoReturn:
    console.print(f"[red]Error: {escape(error.message)}[/red]")
    log_path = getattr(error, "log_path", None)
    if log_path:
        console.print(f"  See log: {log_path}")
    raise typer.Exit(code=1) from None


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Cello Ops - build, publish and run the Cello service platform."""
    _configure_logging(_settings().log_level)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = _settings()
    if json_output:
        console.print(print_settings_json(settings))
        return

    targets_display = (
        str(settings.targets_file) if settings.targets_file else "(built-in)"
    )
    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Identity:[/bold]")
    console.print(f"  Mode:                {settings.mode.value}")
    console.print(f"  Release:             {settings.is_release}")
    console.print(f"  Version:             {settings.version}")
    console.print(f"  Architecture:        {settings.arch or '(host)'}")
    console.print(f"  Image base name:     {settings.image_basename}")
    console.print()
    console.print("[bold]Runtime:[/bold]")
    console.print(f"  Public IP:           {settings.server_public_ip or '(not set)'}")
    console.print(f"  Worker type:         {settings.worker_type}")
    console.print(f"  Log level:           {settings.log_level}")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Root path:           {settings.root_path}")
    console.print(f"  Build directory:     {settings.build_dir}")
    console.print(f"  Target catalog:      {targets_display}")
    console.print(f"  Compose directory:   {settings.compose_dir}")
    console.print(f"  Bootstrap marker:    {settings.bootstrap_marker}")


@app.command()
def targets(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List build targets by category."""
    from cello_ops.builds.engine import load_graph

    try:
        graph = load_graph(_run_config())
    except CelloOpsError as e:
        _abort(e)

    if json_output:
        output = [t.model_dump(mode="json", exclude_none=True) for t in graph.targets]
        console.print(json.dumps(output, indent=2))
        return

    by_category: dict[str, list] = {}
    for t in graph.targets:
        by_category.setdefault(t.category or "other", []).append(t)

    console.print("[bold]usage: cello build TARGET...[/bold]")
    console.print()
    for category in sorted(by_category):
        console.print(f"[bold]{category}:[/bold]")
        for t in by_category[category]:
            description = t.description or ""
            console.print(
                f"  [yellow]{t.name:<32}[/yellow][green]{description}[/green]"
            )
        console.print()


@app.command()
def build(
    target_names: Annotated[
        list[str] | None,
        typer.Argument(help="Targets to build (default: docker)", show_default=False),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Rebuild even if a build marker exists"),
    ] = False,
) -> None:
    """Build docker images locally."""
    from cello_ops.builds.catalog import ALL_IMAGES_TARGET
    from cello_ops.builds.engine import BuildEngine, image_name

    names = target_names or [ALL_IMAGES_TARGET]
    try:
        engine = BuildEngine(_run_config())
        artifacts = engine.build(names, force=force)
    except CelloOpsError as e:
        _abort(e)

    console.print(
        f"[bold]Built {len(artifacts)} image(s) with tag {engine.tag}:[/bold]"
    )
    for artifact in sorted(artifacts, key=lambda a: a.name):
        repo = image_name(engine.config.image_basename, artifact.name)
        console.print(f"  [green]✓ {repo}:{artifact.tag}[/green]")


@app.command()
def publish(
    target_names: Annotated[
        list[str] | None,
        typer.Argument(help="Targets to publish (default: docker)", show_default=False),
    ] = None,
) -> None:
    """Build (if needed) and push images to the registry."""
    from cello_ops.builds.catalog import ALL_IMAGES_TARGET
    from cello_ops.builds.engine import BuildEngine
    from cello_ops.publish import PublishPipeline, RegistryCredentials

    names = target_names or [ALL_IMAGES_TARGET]
    try:
        run_config = _run_config()
        engine = BuildEngine(run_config)
        artifacts = engine.build(names)
        pipeline = PublishPipeline(run_config)
        results = pipeline.publish(
            artifacts, RegistryCredentials.from_settings(run_config.settings)
        )
    except CelloOpsError as e:
        _abort(e)

    console.print(f"[bold]Published {len(results)} image(s):[/bold]")
    for r in results:
        console.print(f"  [green]✓ {r.reference}[/green]")


@app.command()
def clean(
    images: Annotated[
        bool,
        typer.Option("--images", help="Also remove local platform images"),
    ] = False,
) -> None:
    """Remove build outputs and markers."""
    from cello_ops.builds.engine import clean_build_area

    try:
        clean_build_area(_run_config(), images=images)
    except CelloOpsError as e:
        _abort(e)
    console.print("[green]Build area cleaned[/green]")


def _controller():
    from cello_ops.lifecycle.controller import ServiceLifecycleController

    return ServiceLifecycleController(_run_config())


def _start_or_restart(restart: bool) -> None:
    from cello_ops.lifecycle.service_secrets import load_secrets

    try:
        controller = _controller()
        atexit.register(controller.reap_storage)
        secrets = load_secrets(controller.config.settings)
        if restart:
            result = controller.restart(secrets)
        else:
            result = controller.start(secrets)
    except ConfigurationError as e:
        if e.code == "missing_environment":
            console.print(f"[red]{escape(e.message)}[/red]")
            console.print("Please refer docs/setup_master.md for more details")
            raise typer.Exit(code=1) from None
        _abort(e)
    except CelloOpsError as e:
        _abort(e)

    console.print(
        f"[green]Services running ({result.composition.mode.value} mode, "
        f"{result.composition.file_path.name})[/green]"
    )
    if result.bootstrapped:
        console.print("  Keycloak initialized on this host")
    if not result.storage_launched:
        console.print("[yellow]  Storage service was not launched[/yellow]")


@app.command()
def start() -> None:
    """Start all services."""
    _start_or_restart(restart=False)


@app.command()
def stop() -> None:
    """Stop all services and remove their containers."""
    try:
        result = _controller().stop()
    except CelloOpsError as e:
        _abort(e)
    console.print(
        f"[green]Services stopped ({result.composition.file_path.name})[/green]"
    )


@app.command()
def restart() -> None:
    """Stop, then start all services."""
    _start_or_restart(restart=True)


@app.command()
def log(
    service: Annotated[
        str,
        typer.Option("--service", "-s", help="Service to tail"),
    ],
) -> None:
    """Tail the log of one service."""
    try:
        _controller().logs(service)
    except CelloOpsError as e:
        _abort(e)


@app.command()
def logs() -> None:
    """Tail the logs of all services."""
    try:
        _controller().logs()
    except CelloOpsError as e:
        _abort(e)


@app.command("start-nfs")
def start_nfs() -> None:
    """Start the shared NFS storage service."""
    try:
        _controller().start_storage()
    except CelloOpsError as e:
        _abort(e)
    console.print("[green]Storage service started[/green]")


@app.command("stop-nfs")
def stop_nfs() -> None:
    """Stop the shared NFS storage service."""
    try:
        _controller().stop_storage()
    except CelloOpsError as e:
        _abort(e)
    console.print("[green]Storage service stopped[/green]")


@app.command("setup-master")
def setup_master() -> None:
    """Set up this host as a master node."""
    from cello_ops.lifecycle import hosts

    try:
        hosts.setup_master(_run_config())
    except CelloOpsError as e:
        _abort(e)


@app.command("setup-worker")
def setup_worker() -> None:
    """Set up this host as a worker node (type from WORKER_TYPE)."""
    from cello_ops.lifecycle import hosts

    try:
        hosts.setup_worker(_run_config())
    except CelloOpsError as e:
        _abort(e)


if __name__ == "__main__":
    app()
