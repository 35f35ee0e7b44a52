"""Matrix chat bot with per-user and per-room model preferences."""

__version__ = "0.1.0"
