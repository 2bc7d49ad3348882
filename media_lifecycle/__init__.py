"""Media asset lifecycle and deduplication service."""

__version__ = "0.1.0"
