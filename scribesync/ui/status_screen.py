"""Terminal rendering of sessions and chunk upload status."""

from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..models.chunk import ChunkStatus
from ..models.events import InterruptedRecording

STATUS_STYLES = {
    ChunkStatus.QUEUED: "white",
    ChunkStatus.UPLOADING: "cyan",
    ChunkStatus.UPLOADED: "blue",
    ChunkStatus.CONFIRMED: "green",
    ChunkStatus.PENDING_RETRY: "yellow",
    ChunkStatus.FAILED: "bold red",
}


def sessions_table(sessions: List[Dict[str, Any]]) -> Table:
    """Build a table from the server's session list."""
    table = Table(title="Sessions", show_header=True, header_style="bold magenta")
    table.add_column("Session", style="cyan")
    table.add_column("Status", style="white")
    table.add_column("Created", style="white")
    table.add_column("Chunks", justify="right")
    table.add_column("Confirmed", justify="right", style="green")

    for session in sessions:
        chunks = session.get("chunks", [])
        confirmed = sum(1 for chunk in chunks if chunk.get("confirmed"))
        table.add_row(
            session.get("sessionId", "?"),
            session.get("status", "?"),
            session.get("createdAt", ""),
            str(session.get("totalChunks", len(chunks))),
            str(confirmed),
        )
    return table


def chunk_status_table(rows: List[Dict[str, Any]]) -> Table:
    """Build a table of local chunk statuses (as from RecordingService.get_chunk_statuses)."""
    table = Table(title="Chunk Uploads", show_header=True, header_style="bold magenta")
    table.add_column("Session", style="cyan")
    table.add_column("Chunk", justify="right")
    table.add_column("Status")

    for row in rows:
        status: ChunkStatus = row["status"]
        table.add_row(
            row["session_id"],
            str(row["chunk_number"]),
            f"[{STATUS_STYLES[status]}]{status.label}[/]",
        )
    return table


class StatusScreen:
    """Prints session and upload information to the terminal."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def show_sessions(self, sessions: List[Dict[str, Any]]) -> None:
        if not sessions:
            self.console.print("No sessions on the server yet", style="yellow")
            return
        self.console.print(sessions_table(sessions))
        self.console.print(f"Total sessions: {len(sessions)}")

    def show_chunk_statuses(self, rows: List[Dict[str, Any]]) -> None:
        self.console.print(chunk_status_table(rows))

    def show_interruption(self, notice: Optional[InterruptedRecording]) -> None:
        if notice is None:
            self.console.print("✅ No interrupted recording", style="green")
            return
        self.console.print(Panel(notice.message, title="Recording interrupted", border_style="red"))

    def show_error(self, message: str) -> None:
        self.console.print(f"❌ {message}", style="bold red")
