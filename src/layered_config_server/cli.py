"""Command line surface of the configuration server.

Commands
--------
* ``info`` – installed version and Python requirement.
* ``settings`` – effective settings after file and environment layering.
* ``resolve`` – one ``APPLICATION [PROFILE [LABEL]]`` bundle as JSON.
* ``serve`` – run the HTTP frontend under ``uvicorn``.

Errors raised by the service are not caught here: :func:`main` hands them to
``lib_cli_exit_tools``, which prints the message (or the full traceback with
``--traceback``) and picks the exit status.
"""

from __future__ import annotations

import contextlib
import dataclasses
import json
import sys
from importlib import metadata
from pathlib import Path
from typing import Final, Iterator, Optional, Sequence

import lib_cli_exit_tools
import rich_click as click
import uvicorn

from .api import create_app
from .core import build_service
from .domain.model import ConfigRequest
from .observability import configure_logging, log_info
from .settings import ServerSettings, load_settings

_DISTRIBUTION: Final[str] = "layered_config_server"
_HELP: Final[dict[str, list[str]]] = {"help_option_names": ["-h", "--help"]}
_MESSAGE_LIMIT: Final[int] = 500
_TRACEBACK_LIMIT: Final[int] = 10_000

_SETTINGS_FILE_OPTION = click.option(
    "--settings-file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    default=None,
    help="Settings file (TOML, YAML, JSON or properties) layered under CONFIG_SERVER_* variables",
)
_ROOT_OPTION = click.option(
    "--root",
    type=click.Path(path_type=Path, file_okay=False, dir_okay=True),
    default=None,
    help="Serve from this directory (selects the native backend)",
)
_URI_OPTION = click.option("--uri", default=None, help="Serve from this git repository (selects the git backend)")


def _installed_version() -> str:
    try:
        return metadata.version(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return "0.0.0"


@click.group(help="Versioned per-application configuration server", context_settings=_HELP)
@click.version_option(version=_installed_version(), prog_name=_DISTRIBUTION)
@click.option("--traceback/--no-traceback", default=False, help="Print the full traceback when a command fails")
def cli(traceback: bool) -> None:
    """Configuration server commands."""

    lib_cli_exit_tools.config.traceback = traceback
    lib_cli_exit_tools.config.traceback_force_color = traceback


@cli.command("info", context_settings=_HELP)
def cli_info() -> None:
    """Show the installed version of the server."""

    try:
        meta = metadata.metadata(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        click.echo(f"{_DISTRIBUTION} (metadata unavailable)")
        return
    for field in ("Name", "Version", "Requires-Python", "Summary"):
        if meta.get(field):
            click.echo(f"{field + ':':<17} {meta[field]}")


@cli.command("settings", context_settings=_HELP)
@_SETTINGS_FILE_OPTION
@click.option("--indent", type=int, default=2, show_default=True, help="JSON indent size")
def cli_settings(settings_file: Optional[Path], indent: int) -> None:
    """Print the settings the server would start with."""

    click.echo(json.dumps(load_settings(settings_file=settings_file).to_dict(), indent=indent))


@cli.command("resolve", context_settings=_HELP)
@click.argument("application")
@click.argument("profile", required=False)
@click.argument("label", required=False)
@_SETTINGS_FILE_OPTION
@_ROOT_OPTION
@_URI_OPTION
@click.option("--indent", type=int, default=None, help="Indent the JSON output by this many spaces")
def cli_resolve(
    application: str,
    profile: Optional[str],
    label: Optional[str],
    settings_file: Optional[Path],
    root: Optional[Path],
    uri: Optional[str],
    indent: Optional[int],
) -> None:
    """Resolve APPLICATION [PROFILE [LABEL]] once and print the bundle as JSON.

    PROFILE and LABEL fall back to ``defaults.profile`` and ``defaults.label``.
    """

    settings = _select_source(load_settings(settings_file=settings_file), root=root, uri=uri)
    request = ConfigRequest(application, profile or settings.default_profile, label or settings.default_label)
    with build_service(settings) as service:
        bundle = service.resolve(request)
    click.echo(bundle.to_json(indent=indent))


@cli.command("serve", context_settings=_HELP)
@_SETTINGS_FILE_OPTION
@click.option("--host", default=None, help="Interface to bind (overrides server.host)")
@click.option("--port", type=int, default=None, help="Port to listen on (overrides server.port)")
@_ROOT_OPTION
@_URI_OPTION
def cli_serve(
    settings_file: Optional[Path],
    host: Optional[str],
    port: Optional[int],
    root: Optional[Path],
    uri: Optional[str],
) -> None:
    """Start the HTTP frontend and block until interrupted."""

    settings = _select_source(load_settings(settings_file=settings_file), root=root, uri=uri)
    configure_logging(settings.log_level)
    app = create_app(build_service(settings), default_label=settings.default_label)
    bind_host = host or settings.server.host
    bind_port = settings.server.port if port is None else port
    log_info("server_starting", host=bind_host, port=bind_port, backend=settings.backend)
    uvicorn.run(app, host=bind_host, port=bind_port, log_level=settings.log_level.lower())


def _select_source(settings: ServerSettings, *, root: Optional[Path], uri: Optional[str]) -> ServerSettings:
    """Apply ``--uri`` or ``--root``; ``--uri`` wins when both are given."""

    if uri:
        return dataclasses.replace(settings, backend="git", git=dataclasses.replace(settings.git, uri=uri))
    if root is not None:
        return dataclasses.replace(settings, backend="native", native=dataclasses.replace(settings.native, root=str(root)))
    return settings


@contextlib.contextmanager
def _traceback_flags_restored(restore: bool) -> Iterator[None]:
    config = lib_cli_exit_tools.config
    saved = (getattr(config, "traceback", False), getattr(config, "traceback_force_color", False))
    try:
        yield
    finally:
        if restore:
            config.traceback, config.traceback_force_color = saved


def main(argv: Optional[Sequence[str]] = None, *, restore_traceback: bool = True) -> int:
    """Run the CLI and return its exit status instead of exiting.

    ``--traceback`` toggles global ``lib_cli_exit_tools`` flags; with
    *restore_traceback* they are put back afterwards so repeated in-process
    calls (tests, embedding) start from the same state.
    """

    with _traceback_flags_restored(restore_traceback):
        try:
            return lib_cli_exit_tools.run_cli(cli, argv=None if argv is None else list(argv), prog_name=_DISTRIBUTION)
        except BaseException as exc:  # noqa: BLE001 - lib_cli_exit_tools maps every exception to a status
            verbose = lib_cli_exit_tools.config.traceback
            lib_cli_exit_tools.print_exception_message(
                trace_back=verbose,
                length_limit=_TRACEBACK_LIMIT if verbose else _MESSAGE_LIMIT,
            )
            return lib_cli_exit_tools.get_system_exit_code(exc)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main(sys.argv[1:]))
