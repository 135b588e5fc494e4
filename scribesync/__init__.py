"""Resumable chunked upload of long-running audio recordings."""

__version__ = "0.1.0"
