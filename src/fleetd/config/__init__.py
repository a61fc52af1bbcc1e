"""fleetd configuration.

Example:
    >>> from fleetd.config import load_config
    >>> config = load_config()
    >>> config.port
    14444
"""

from fleetd.exceptions import ConfigError, ConfigLoadError

from ._loader import (
    FD_ENV,
    SERVICE_PID_ENV,
    WORKER_MODE_ENV,
    consume_worker_environment,
    deep_merge,
    load_config,
    parse_env_vars,
    read_toml_file,
)
from ._models import (
    DaemonConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    WorkerEnvironment,
)

__all__ = [
    "FD_ENV",
    "SERVICE_PID_ENV",
    "WORKER_MODE_ENV",
    "ConfigError",
    "ConfigLoadError",
    "DaemonConfig",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "WorkerEnvironment",
    "consume_worker_environment",
    "deep_merge",
    "load_config",
    "parse_env_vars",
    "read_toml_file",
]
