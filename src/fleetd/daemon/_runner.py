"""Launching the external service runner for ADD and RESTORE commands."""

import os
import shutil
import signal
from collections.abc import Callable, Mapping, Sequence
from typing import Final, final

from fleetd.exceptions import RunnerNotFoundError, SpawnError

from ._models import AddCommand, RestoreCommand

RUNNER_NAME: Final = "fleetd-runner"
RUNNER_ENV: Final = "FLEETD_SERVICE_RUNNER"
OBJECT_ID_ENV: Final = "FLEETD_OBJECT_ID"
RESTORE_FLAG: Final = "--restore"

SpawnFunc = Callable[[str, Sequence[str], Mapping[str, str]], int]

# Dispositions the service worker changes for itself; runners start clean.
_RESET_SIGNALS: Final = (signal.SIGINT, signal.SIGTERM, signal.SIGUSR1)


def spawn_process(path: str, argv: Sequence[str], env: Mapping[str, str]) -> int:
    """Fork and exec path, returning the child pid."""
    return os.posix_spawn(path, list(argv), dict(env), setsigdef=_RESET_SIGNALS)


@final
class ServiceLauncher:
    """Spawns runner processes for decoded commands.

    The runner location is resolved on first use and cached for the
    lifetime of the launcher.
    """

    __slots__ = ("_environ", "_override", "_runner", "_spawn")

    def __init__(
        self,
        *,
        runner: str | None = None,
        spawn: SpawnFunc = spawn_process,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the launcher.

        Args:
            runner: Explicit runner name or path. Falls back to the
                FLEETD_SERVICE_RUNNER environment variable, then to a PATH
                lookup of fleetd-runner.
            spawn: Function that starts a process and returns its pid.
            environ: Base environment for runners (os.environ if None).
        """
        self._environ: Mapping[str, str] = os.environ if environ is None else environ
        self._override: str | None = runner or self._environ.get(RUNNER_ENV) or None
        self._spawn = spawn
        self._runner: str | None = None

    def resolve_runner(self) -> str:
        """Return the runner's absolute path.

        Raises:
            RunnerNotFoundError: If the runner cannot be located.
        """
        if self._runner is not None:
            return self._runner

        candidate = self._override or RUNNER_NAME
        path_env = self._environ.get("PATH")
        if os.sep in candidate:
            resolved = candidate if os.access(candidate, os.X_OK) else None
        else:
            resolved = shutil.which(candidate, path=path_env)

        if resolved is None:
            msg = f"Service runner '{candidate}' not found or not executable"
            raise RunnerNotFoundError(msg, argv=[candidate])

        self._runner = os.path.abspath(resolved)
        return self._runner

    def argv_for(self, command: AddCommand | RestoreCommand) -> list[str]:
        """Build the runner argument vector for a command."""
        runner = self.resolve_runner()
        match command:
            case AddCommand(args=args):
                return [runner, "--", *args]
            case RestoreCommand(object_id=object_id):
                return [runner, RESTORE_FLAG, object_id]

    def launch(self, command: AddCommand | RestoreCommand) -> int:
        """Spawn the runner for a command and return its pid.

        Raises:
            RunnerNotFoundError: If the runner cannot be located.
            SpawnError: If the process cannot be started.
        """
        argv = self.argv_for(command)
        env = {**self._environ, OBJECT_ID_ENV: command.object_id}
        try:
            return self._spawn(argv[0], argv, env)
        except OSError as e:
            msg = f"Failed to spawn service for '{command.object_id}': {e}"
            raise SpawnError(msg, argv=argv, cause=e) from e
