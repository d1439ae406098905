"""atlas-stats - ranked host and process metrics for the terminal."""

__version__ = "0.1.0"
