"""Command-line interface for script-panel.

Usage:
    script-panel upload hello.py               # Store a script, print its stored name
    script-panel list                          # Stored scripts, newest first
    script-panel run 1718..._hello.py -t 10    # Run a stored script, stream its output
    script-panel run --upload hello.py         # Upload then run
    script-panel delete 1718..._hello.py
"""

from __future__ import annotations

import asyncio
import json
import signal
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import NoReturn

import click

from script_panel import (
    AccessDeniedError,
    ExitEvent,
    InputValidationError,
    PanelError,
    RunService,
    Settings,
    UploadNotFoundError,
    __version__,
)
from script_panel._logging import configure_logging
from script_panel.events import ErrorEvent, StderrEvent, StdoutEvent

# Exit codes following Unix conventions
EXIT_SUCCESS = 0
EXIT_CLI_ERROR = 2
EXIT_TIMEOUT = 124  # Matches `timeout` command
EXIT_SANDBOX_ERROR = 125


def format_error(title: str, message: str, suggestions: list[str] | None = None) -> str:
    """Format an error message following What → Why → Fix pattern."""
    lines = [
        click.style(f"Error: {title}", fg="red", bold=True),
        "",
        f"  {message}",
    ]

    if suggestions:
        lines.extend(["", "  Suggestions:"])
        lines.extend(f"    • {suggestion}" for suggestion in suggestions)

    return "\n".join(lines)


def exit_status(event: ExitEvent) -> int:
    """Shell-style status for a finished run: the exit code, 128+N for signal N, 124 if killed."""
    if event.killed:
        return EXIT_TIMEOUT
    if event.exit_code is not None:
        return event.exit_code
    if event.signal is not None:
        try:
            return 128 + signal.Signals[event.signal].value
        except KeyError:
            return EXIT_SANDBOX_ERROR
    return EXIT_SANDBOX_ERROR


def report_panel_error(e: PanelError) -> int:
    """Print a synchronous rejection and return the exit code for it."""
    if isinstance(e, AccessDeniedError):
        click.echo(
            format_error("Forbidden", "The admin token was rejected.", ["Pass --token or set SCRIPT_PANEL_ADMIN_TOKEN"]),
            err=True,
        )
    elif isinstance(e, UploadNotFoundError):
        click.echo(
            format_error("File not found", e.message, ["Run `script-panel list` to see stored names"]),
            err=True,
        )
    elif isinstance(e, InputValidationError):
        click.echo(format_error("Invalid input", e.message), err=True)
    else:
        click.echo(format_error("Sandbox error", e.message), err=True)
        return EXIT_SANDBOX_ERROR
    return EXIT_CLI_ERROR


async def run_file(
    settings: Settings,
    source: str,
    *,
    upload: bool,
    timeout: int | None,
    token: str | None,
    json_output: bool,
    quiet: bool,
) -> int:
    """Submit a run and stream its events until the terminal one.

    Returns:
        Exit code to return from CLI
    """
    try:
        async with RunService.from_settings(settings) as service:
            file_name = await service.upload_file(Path(source)) if upload else source
            run_id = await service.submit_run(file_name, timeout, token=token)
            # Subscribe before yielding to the loop so the Start event is seen
            subscription = service.subscribe(run_id)

            status = EXIT_SANDBOX_ERROR
            async with subscription:
                async for event in subscription:
                    if json_output:
                        click.echo(event.model_dump_json())
                    elif isinstance(event, StdoutEvent):
                        click.echo(event.chunk, nl=False)
                    elif isinstance(event, StderrEvent):
                        click.echo(event.chunk, nl=False, err=True)
                    elif isinstance(event, ErrorEvent):
                        click.echo(format_error("Run failed", event.error, ["Check that docker is installed and running"]), err=True)

                    if isinstance(event, ExitEvent):
                        status = exit_status(event)
                        if event.killed and not json_output:
                            click.echo(format_error("Run timed out", "The script was killed at its deadline."), err=True)
                        elif not quiet and not json_output and sys.stdout.isatty():
                            click.echo(click.style(f"✓ Exited with status {status}", fg="green", dim=True), err=True)
            return status
    except PanelError as e:
        return report_panel_error(e)


def _resolve_token(settings: Settings, token: str | None) -> str:
    """The CLI runs with the operator's own configuration, so its token is the default."""
    return token if token is not None else settings.admin_token.get_secret_value()


def _format_mtime(mtime: float) -> str:
    return datetime.fromtimestamp(mtime, UTC).strftime("%Y-%m-%d %H:%M:%S")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-q", "--quiet", is_flag=True, help="Suppress log output")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.version_option(__version__, "-V", "--version", prog_name="script-panel")
@click.pass_context
def main(ctx: click.Context, quiet: bool, verbose: bool) -> None:
    """Run uploaded scripts in throwaway docker sandboxes.

    Configuration comes from SCRIPT_PANEL_* environment variables
    (SCRIPT_PANEL_UPLOAD_DIR, SCRIPT_PANEL_ADMIN_TOKEN, ...).
    """
    configure_logging(level="DEBUG" if verbose else None, quiet=quiet)
    ctx.obj = Settings()


@main.command("upload")
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def upload_cmd(settings: Settings, paths: tuple[Path, ...]) -> None:
    """Store local scripts; prints each stored name."""

    async def _upload() -> list[str]:
        async with RunService.from_settings(settings) as service:
            return [await service.upload_file(path) for path in paths]

    try:
        names = asyncio.run(_upload())
    except PanelError as e:
        sys.exit(report_panel_error(e))
    for name in names:
        click.echo(name)


@main.command("list")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_obj
def list_cmd(settings: Settings, json_output: bool) -> None:
    """List stored scripts, newest first."""

    async def _list() -> list[dict[str, object]]:
        async with RunService.from_settings(settings) as service:
            return [info.model_dump() for info in await service.list_files()]

    files = asyncio.run(_list())
    if json_output:
        click.echo(json.dumps(files, indent=2))
        return
    for info in files:
        click.echo(f"{_format_mtime(info['mtime'])}  {info['size']:>10}  {info['name']}")  # type: ignore[arg-type]


@main.command("delete")
@click.argument("name")
@click.option("--token", envvar="SCRIPT_PANEL_ADMIN_TOKEN", help="Admin token")
@click.pass_obj
def delete_cmd(settings: Settings, name: str, token: str | None) -> None:
    """Delete a stored script."""

    async def _delete() -> None:
        async with RunService.from_settings(settings) as service:
            await service.delete_file(name, token=_resolve_token(settings, token))

    try:
        asyncio.run(_delete())
    except PanelError as e:
        sys.exit(report_panel_error(e))


@main.command("run")
@click.argument("source")
@click.option("-u", "--upload", is_flag=True, help="SOURCE is a local file to upload first")
@click.option("-t", "--timeout", type=int, default=None, help="Timeout in seconds (1-300)")
@click.option("--token", envvar="SCRIPT_PANEL_ADMIN_TOKEN", help="Admin token")
@click.option("--json", "json_output", is_flag=True, help="Print events as JSON lines")
@click.pass_context
def run_cmd(
    ctx: click.Context,
    source: str,
    upload: bool,
    timeout: int | None,
    token: str | None,
    json_output: bool,
) -> NoReturn:
    """Run a stored script in the sandbox and stream its output.

    Exit status is the script's, 124 when it was killed at its deadline,
    125 when the sandbox failed.
    """
    settings: Settings = ctx.obj
    if upload and not Path(source).is_file():
        raise click.UsageError(f"No such file: {source}")

    quiet = bool(ctx.parent and ctx.parent.params.get("quiet"))
    exit_code = asyncio.run(
        run_file(
            settings,
            source,
            upload=upload,
            timeout=timeout,
            token=_resolve_token(settings, token),
            json_output=json_output,
            quiet=quiet,
        )
    )
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
