"""Thin CLI wrapper for auroraboot_client.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import asyncio
import json
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Annotated

import typer
from pydantic import ValidationError
from rich.console import Console

from auroraboot_client import __version__
from auroraboot_client.config import Settings, get_settings, print_settings_json
from auroraboot_client.errors import APIError, BuildNotFoundError
from auroraboot_client.types import ArtifactEntry, BuildStatus

if TYPE_CHECKING:
    from auroraboot_client.builds.controller import BuildSessionController
    from auroraboot_client.builds.models import BuildRecord

app = typer.Typer(
    name="auroraboot",
    help="AuroraBoot client - start image builds and follow their logs",
    no_args_is_help=True,
)
console = Console()

ServerOption = Annotated[
    str | None,
    typer.Option("--server", help="AuroraBoot server URL (overrides settings)"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"auroraboot-client version {__version__}")
        raise typer.Exit()


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
    """AuroraBoot client - start image builds and follow their logs."""
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _settings(server: str | None) -> Settings:
    settings = get_settings()
    if server:
        try:
            settings = Settings(**{**settings.model_dump(), "base_url": server})
        except ValidationError:
            raise typer.BadParameter(
                f"invalid server URL '{server}'", param_hint="--server"
            ) from None
    return settings


@app.command()
def config(json_output: JsonOption = False) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings))
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Server:[/bold]")
        console.print(f"  Base URL:            {settings.base_url}")
        console.print(f"  Log level:           {settings.log_level}")
        console.print(f"  List page size:      {settings.list_limit}")
        console.print()
        console.print("[bold]Log streaming:[/bold]")
        console.print(f"  Grace period:        {settings.grace_period}s")
        console.print(
            "  Clean close codes:   "
            f"{', '.join(str(c) for c in settings.clean_close_codes)}"
        )
        console.print(f"  Max reconnects:      {settings.max_reconnects}")
        console.print()
        console.print("[bold]Timeouts (seconds):[/bold]")
        console.print(f"  Request timeout:     {settings.request_timeout}")
        console.print(f"  Connect timeout:     {settings.connect_timeout}")


builds_app = typer.Typer(help="List, start and follow builds")
app.add_typer(builds_app, name="builds")


def _print_artifacts(build_id: str, artifacts: Sequence[ArtifactEntry]) -> None:
    console.print(f"[bold]Artifacts ({len(artifacts)}):[/bold]")
    for artifact in artifacts:
        console.print(f"  [green]{artifact.name}[/green]  {artifact.url}")
        if artifact.description:
            console.print(f"    {artifact.description}")
        console.print(f"    Download: {artifact.download_path(build_id)}")


@builds_app.command("list")
def builds_list(
    status: Annotated[
        BuildStatus | None,
        typer.Option("--status", "-s", help="Filter by build status"),
    ] = None,
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-n", min=1, max=100, help="Maximum builds"),
    ] = None,
    offset: Annotated[
        int,
        typer.Option("--offset", min=0, help="Number of builds to skip"),
    ] = 0,
    server: ServerOption = None,
    json_output: JsonOption = False,
) -> None:
    """List builds, newest first."""
    from auroraboot_client.builds.api import BuildsAPI

    async def _list():
        async with BuildsAPI(_settings(server)) as api:
            return await api.list_builds(status=status, limit=limit, offset=offset)

    try:
        page = asyncio.run(_list())
    except APIError as e:
        console.print(f"[red]Failed to list builds: {e}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        output = {"builds": [b.to_dict() for b in page.builds], "total": page.total}
        console.print(json.dumps(output, indent=2))
        return

    if not page.builds:
        console.print("[yellow]No builds found[/yellow]")
        return

    console.print(
        f"[bold]Showing {len(page.builds)} of {page.total} build(s):[/bold]"
    )
    console.print()
    for build in page.builds:
        console.print(f"  [green]{build.id}[/green]  {build.status.value}")
        console.print(f"    {build.title}  image={build.image or 'N/A'}")
        console.print()


@builds_app.command("show")
def builds_show(
    build_id: Annotated[str, typer.Argument(help="Build ID to show")],
    server: ServerOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show details of a specific build."""
    from auroraboot_client.builds.api import BuildsAPI
    from auroraboot_client.builds.models import BuildRecord

    async def _show():
        async with BuildsAPI(_settings(server)) as api:
            return await api.get_build(build_id)

    try:
        record = BuildRecord.from_snapshot(asyncio.run(_show()))
    except BuildNotFoundError:
        console.print(f"[red]Build not found: {build_id}[/red]")
        raise typer.Exit(code=1) from None
    except APIError as e:
        console.print(f"[red]Failed to fetch build: {e}[/red]")
        raise typer.Exit(code=1) from None

    if record is None:
        console.print(f"[red]Server returned no usable data for {build_id}[/red]")
        raise typer.Exit(code=1)

    if json_output:
        console.print(json.dumps(record.to_dict(), indent=2))
        return

    console.print(f"[bold]Build: {record.id}[/bold]")
    for label, value in record.summary().items():
        console.print(f"  {label + ':':<14}{value}")
    if record.error_message:
        console.print(f"  [red]Error: {record.error_message}[/red]")


@builds_app.command("artifacts")
def builds_artifacts(
    build_id: Annotated[str, typer.Argument(help="Build ID")],
    server: ServerOption = None,
    json_output: JsonOption = False,
) -> None:
    """List the artifacts of a build."""
    from auroraboot_client.builds.api import BuildsAPI

    async def _artifacts():
        async with BuildsAPI(_settings(server)) as api:
            return await api.get_artifacts(build_id)

    try:
        artifacts = asyncio.run(_artifacts())
    except APIError as e:
        console.print(f"[red]Failed to fetch artifacts: {e}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        output = [
            {"name": a.name, "description": a.description, "url": a.url}
            for a in artifacts
        ]
        console.print(json.dumps(output, indent=2))
        return

    if not artifacts:
        console.print("[yellow]No artifacts found[/yellow]")
        return
    _print_artifacts(build_id, artifacts)


@builds_app.command("logs")
def builds_logs(
    build_id: Annotated[str, typer.Argument(help="Build ID")],
    server: ServerOption = None,
) -> None:
    """Print the historical log of a build."""
    from auroraboot_client.builds.api import BuildsAPI
    from auroraboot_client.builds.controller import strip_ansi

    async def _logs():
        async with BuildsAPI(_settings(server)) as api:
            return await api.get_logs(build_id)

    try:
        text = asyncio.run(_logs())
    except APIError as e:
        console.print(f"[red]Failed to fetch logs: {e}[/red]")
        raise typer.Exit(code=1) from None
    console.out(strip_ansi(text), end="", highlight=False)


class _ChunkPrinter:
    """Prints the log view chunks of a controller not printed yet."""

    def __init__(self, controller: "BuildSessionController") -> None:
        self._controller = controller
        self._log_generation: int | None = None
        self._printed = 0

    def update(self) -> None:
        controller = self._controller
        if controller.log_generation != self._log_generation:
            # The log view was replaced (history load or reconnect)
            self._log_generation = controller.log_generation
            self._printed = 0
        for chunk in controller.chunks_since(self._printed):
            console.out(chunk, end="", highlight=False)
            self._printed += 1


async def _watch(
    settings: Settings, build_id: str, poll_interval: float
) -> tuple["BuildRecord | None", list[ArtifactEntry]]:
    from auroraboot_client.builds.api import BuildsAPI
    from auroraboot_client.builds.controller import BuildSessionController

    async with BuildsAPI(settings) as api:
        snapshot = await api.get_build(build_id)
        controller = BuildSessionController(api, settings=settings)
        controller.on_change = _ChunkPrinter(controller).update

        await controller.observe(snapshot)
        try:
            while True:
                await controller.wait_idle()
                record = controller.record
                if record is None:
                    return None, []
                if not controller.is_streaming and record.is_terminal():
                    return record, list(controller.artifacts)
                await asyncio.sleep(poll_interval)
                if not controller.is_streaming:
                    await controller.refresh()
        finally:
            controller.stop_observing()


@builds_app.command("watch")
def builds_watch(
    build_id: Annotated[str, typer.Argument(help="Build ID to follow")],
    poll_interval: Annotated[
        float,
        typer.Option("--poll-interval", min=0.1, help="Seconds between refreshes"),
    ] = 2.0,
    server: ServerOption = None,
) -> None:
    """Follow a build: stream its logs until it completes or fails."""
    try:
        record, artifacts = asyncio.run(
            _watch(_settings(server), build_id, poll_interval)
        )
    except BuildNotFoundError:
        console.print(f"[red]Build not found: {build_id}[/red]")
        raise typer.Exit(code=1) from None
    except APIError as e:
        console.print(f"[red]Failed to fetch build: {e}[/red]")
        raise typer.Exit(code=1) from None

    if record is None:
        raise typer.Exit(code=1)
    console.print()
    console.print(f"[bold]Build {record.id} {record.status.value}[/bold]")
    if artifacts:
        _print_artifacts(record.id, artifacts)
    if record.is_failure():
        if record.error_message:
            console.print(f"[red]Error: {record.error_message}[/red]")
        raise typer.Exit(code=1)


def _parse_fields(fields: list[str]) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for item in fields:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected KEY=VALUE, got '{item}'")
        parsed[key] = value
    return parsed


@builds_app.command("start")
def builds_start(
    fields: Annotated[
        list[str],
        typer.Argument(help="Build configuration as KEY=VALUE pairs"),
    ],
    watch: Annotated[
        bool,
        typer.Option("--watch", "-w", help="Follow the build after queueing it"),
    ] = False,
    server: ServerOption = None,
) -> None:
    """Queue a new build."""
    from auroraboot_client.builds.api import BuildsAPI

    build_config = _parse_fields(fields)
    settings = _settings(server)

    async def _start():
        async with BuildsAPI(settings) as api:
            return await api.start_build(build_config)

    try:
        build_id = asyncio.run(_start())
    except APIError as e:
        console.print(f"[red]Failed to start build: {e}[/red]")
        raise typer.Exit(code=1) from None

    console.print(f"[green]Queued build {build_id}[/green]")
    if watch:
        builds_watch(build_id, server=server)


if __name__ == "__main__":
    app()
