"""Command-line interface for fleetd."""

from ._app import app, create_app, main
from ._shared import ExitCode, exit_with_error

__all__ = ["ExitCode", "app", "create_app", "exit_with_error", "main"]
