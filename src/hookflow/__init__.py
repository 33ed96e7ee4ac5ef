"""hookflow: file, schedule and lifecycle triggered automation hooks."""

__version__ = "0.1.0"
