"""Job lifecycle tracking and live status streaming for long-running work."""

__version__ = "1.0.0"
