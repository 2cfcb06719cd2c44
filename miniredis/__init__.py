"""Building blocks for an in-memory Redis-compatible test server."""

__version__ = "2.0.0"