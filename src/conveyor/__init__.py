"""conveyor - sequential build pipeline execution engine."""

__version__ = "0.1.0"
