"""Configuration loading.

Sources are merged in precedence order: defaults, then an optional TOML
file, then FLEETD_* environment variables. Nested keys use a double
underscore in the environment (FLEETD_LOGGING__LEVEL -> logging.level).
"""

import os
import tomllib
from collections.abc import Mapping, MutableMapping
from pathlib import Path
from typing import Any, Final

from pydantic import ValidationError

from fleetd.enums import Role
from fleetd.exceptions import ConfigError, ConfigLoadError

from ._models import DaemonConfig, WorkerEnvironment

ENV_PREFIX: Final = "FLEETD_"

WORKER_MODE_ENV: Final = "FLEETD_WORKER_MODE"
FD_ENV: Final = "FLEETD_FD"
SERVICE_PID_ENV: Final = "FLEETD_SERVICE_PID"

# Short environment names kept for compatibility with the process contract.
_ENV_ALIASES: Final = {
    "FLEETD_ADDR": "bind",
    "FLEETD_BIND": "bind",
    "FLEETD_PORT": "port",
    "FLEETD_SOCKET": "socket",
    "FLEETD_SERVICE_RUNNER": "runner",
}


def read_toml_file(path: Path) -> dict[str, Any]:
    """Read and parse a TOML file.

    Args:
        path: Path to the TOML file.

    Returns:
        Parsed TOML content as dictionary.

    Raises:
        ConfigLoadError: If the file cannot be read or parsed.
    """
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        msg = f"Configuration file not found: {path}"
        raise ConfigLoadError(msg, path=path) from e
    except tomllib.TOMLDecodeError as e:
        msg = f"Failed to parse TOML file: {e}"
        raise ConfigLoadError(
            msg,
            path=path,
            line=e.lineno,
            column=e.colno,
        ) from e


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two configuration dictionaries.

    Dictionaries are merged recursively; any other override value replaces
    the base value. Neither input is modified.
    """
    result: dict[str, Any] = dict(base)
    for key, override_val in override.items():
        base_val = result.get(key)
        if isinstance(base_val, dict) and isinstance(override_val, dict):
            result[key] = deep_merge(base_val, override_val)
        else:
            result[key] = override_val
    return result


def parse_env_vars(environ: Mapping[str, str]) -> dict[str, Any]:
    """Parse FLEETD_* environment variables into a config dictionary.

    Only aliased names and double-underscore nested names are recognized, so
    process-contract variables such as FLEETD_FD never leak into the config.
    """
    result: dict[str, Any] = {}

    for key, value in environ.items():
        if key in _ENV_ALIASES:
            result[_ENV_ALIASES[key]] = value
            continue

        if not key.startswith(ENV_PREFIX) or "__" not in key:
            continue

        path = key[len(ENV_PREFIX) :].lower().split("__")
        node = result
        for part in path[:-1]:
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                break
            node = child
        else:
            node[path[-1]] = value

    return result


def load_config(
    path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> DaemonConfig:
    """Load the daemon configuration.

    Args:
        path: Optional TOML configuration file.
        environ: Environment to read (os.environ if None).
        overrides: Highest-precedence values, typically from CLI flags.
            None values are ignored.

    Returns:
        The validated configuration.

    Raises:
        ConfigLoadError: If the TOML file cannot be read.
        ConfigError: If the merged values fail validation.
    """
    env = os.environ if environ is None else environ

    data: dict[str, Any] = {}
    if path is not None:
        data = deep_merge(data, read_toml_file(path))
    data = deep_merge(data, parse_env_vars(env))
    if overrides:
        data = deep_merge(data, {k: v for k, v in overrides.items() if v is not None})

    try:
        return DaemonConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid configuration: {e}"
        raise ConfigError(msg) from e


def consume_worker_environment(
    environ: MutableMapping[str, str] | None = None,
) -> WorkerEnvironment:
    """Read and remove the role dispatch variables.

    The variables are removed so that processes spawned later do not inherit
    a role meant for this process alone.

    Raises:
        ConfigError: If a descriptor or pid value is not an integer.
    """
    env = os.environ if environ is None else environ

    mode = env.pop(WORKER_MODE_ENV, "")
    raw_fd = env.pop(FD_ENV, None)
    raw_pid = env.pop(SERVICE_PID_ENV, None)

    try:
        role = Role(mode)
    except ValueError:
        role = Role.ROOT

    return WorkerEnvironment(
        role=role,
        fd=_parse_int(FD_ENV, raw_fd),
        service_pid=_parse_int(SERVICE_PID_ENV, raw_pid),
    )


def _parse_int(name: str, value: str | None) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError as e:
        msg = f"{name} must be an integer, got {value!r}"
        raise ConfigError(msg) from e
