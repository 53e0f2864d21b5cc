"""blockwarden - Scheduled focus-session blocking driven by remote block lists."""

__version__ = "0.1.0"
