"""fleetd: a single-host process supervisor daemon."""

__version__ = "0.1.0"
