"""skillflow - deterministic routing and execution for skill document bundles."""

__version__ = "0.1.0"
