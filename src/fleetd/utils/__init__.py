"""Shared utilities for fleetd."""

from ._logging import LogFormatType, create_daemon_logger

__all__ = ["LogFormatType", "create_daemon_logger"]
