"""The command-line interface for fleetd."""
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing

from collections.abc import Callable
from pathlib import Path
from typing import Annotated

from cyclopts import App, Parameter
from rich.console import Console

import fleetd
from fleetd.config import (
    ConfigError,
    ConfigLoadError,
    DaemonConfig,
    WorkerEnvironment,
    consume_worker_environment,
    load_config,
)
from fleetd.daemon import run_role
from fleetd.enums import Role
from fleetd.exceptions import WorkerError

from ._shared import ExitCode, exit_with_error

RoleRunner = Callable[[DaemonConfig, WorkerEnvironment], int]

_HELP = "Single-host process supervisor daemon."


def create_app(
    console: Console | None = None,
    error_console: Console | None = None,
    *,
    exit_on_error: bool = True,
    role_runner: RoleRunner = run_role,
) -> App:
    """Create the fleetd CLI application.

    Args:
        console: Console for regular output.
        error_console: Console for errors.
        exit_on_error: Whether cyclopts exits on parse errors.
        role_runner: Runs the process once configuration is loaded.
    """
    if console is None:
        console = Console()
    if error_console is None:
        error_console = Console(stderr=True)

    app = App(
        name="fleetd",
        help=_HELP,
        help_on_error=True,
        console=console,
        error_console=error_console,
        exit_on_error=exit_on_error,
    )

    def run(
        *,
        config: Annotated[
            Path | None, Parameter(name="--config", help="Path to config file")
        ] = None,
        port: Annotated[
            int | None, Parameter(help="Port for the HTTP control API.")
        ] = None,
        bind: Annotated[
            str | None, Parameter(help="Address for the HTTP control API.")
        ] = None,
        socket: Annotated[
            str | None,
            Parameter(help="Serve the HTTP control API on a UNIX socket instead."),
        ] = None,
    ) -> None:
        """Run the daemon, or the worker selected by FLEETD_WORKER_MODE.

        Args:
            config: Explicit path to config file.
            port: Port for the HTTP control API.
            bind: Address for the HTTP control API.
            socket: UNIX socket path for the HTTP control API.
        """
        try:
            environment = consume_worker_environment()
            loaded = load_config(
                config,
                overrides={"port": port, "bind": bind, "socket": socket},
            )
        except ConfigLoadError as e:
            exit_with_error(str(e), ExitCode.LOAD_ERROR, console=error_console)
        except ConfigError as e:
            exit_with_error(str(e), ExitCode.VALIDATION_ERROR, console=error_console)

        if environment.role is Role.ROOT:
            _print_banner(console, loaded)

        try:
            code = role_runner(loaded, environment)
        except WorkerError as e:
            exit_with_error(str(e), ExitCode.WORKER_ERROR, console=error_console)

        if code:
            raise SystemExit(code)

    def version() -> None:
        """Print the fleetd version."""
        console.print(f"fleetd {fleetd.__version__}")

    app.default(run)
    app.command(run, name="run")
    app.command(version, name="version")
    return app


def _print_banner(console: Console, config: DaemonConfig) -> None:
    if config.socket:
        endpoint = f"unix:{config.socket}"
    else:
        endpoint = f"http://{config.bind}:{config.port}"
    console.print(f"[bold]fleetd[/bold] {fleetd.__version__}")
    console.print(f"  Control API: {endpoint}")
    console.print(f"  Runner: {config.runner or 'fleetd-runner (PATH)'}")
    console.print()


app = create_app()


def main() -> None:
    """Default entrypoint for the `fleetd` CLI."""
    create_app()()
