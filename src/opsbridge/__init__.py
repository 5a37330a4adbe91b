"""OpsBridge: operator-driven command execution and self-patching for a live service."""

__version__ = "0.1.0"
