"""Hub readiness — track, poll and provision the hub's runtime prerequisites."""

__version__ = "0.1.0"
