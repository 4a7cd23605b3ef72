"""botwatch: operator console for supervising a remote automation bot."""

__version__ = "0.1.0"
