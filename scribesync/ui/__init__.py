"""Terminal user interface components."""

from .status_screen import StatusScreen, chunk_status_table, sessions_table

__all__ = ["StatusScreen", "chunk_status_table", "sessions_table"]
