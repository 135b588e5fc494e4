"""File management for uploaded audio chunks on the server."""

import os
import logging
import uuid
from pathlib import Path
from typing import Dict, Any

from ..models.session import ChunkUpload

logger = logging.getLogger(__name__)


def chunk_filename(chunk_number: int) -> str:
    return f"chunk_{chunk_number}.wav"


class ChunkStore:
    """Manages file storage and organization for uploaded chunks."""

    def __init__(self, data_dir: str = "./data"):
        """Initialize chunk store with data directory.

        Args:
            data_dir: Base directory for storing all data
        """
        self.data_dir = Path(data_dir)
        self.uploads_dir = self.data_dir / "uploads"
        self.incoming_dir = self.data_dir / "incoming"
        self.sessions_dir = self.data_dir / "sessions"

        self._ensure_directories()

        logger.info(f"ChunkStore initialized with data_dir: {self.data_dir}")

    def _ensure_directories(self) -> None:
        """Ensure all required directories exist."""
        for directory in [self.data_dir, self.uploads_dir, self.incoming_dir, self.sessions_dir]:
            directory.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Ensured directory exists: {directory}")

    def new_staging_path(self) -> Path:
        """Return a unique path in the incoming directory for a request body."""
        return self.incoming_dir / f"{uuid.uuid4().hex}.part"

    def stage_bytes(self, data: bytes, filename: str) -> ChunkUpload:
        """Write raw bytes to the staging area.

        Args:
            data: Uploaded file content
            filename: Final filename of the chunk

        Returns:
            ChunkUpload describing the staged file
        """
        staged = self.new_staging_path()
        with open(staged, 'wb') as f:
            f.write(data)
        return ChunkUpload(filename=filename, size=len(data), staged_path=str(staged))

    def get_session_path(self, session_id: str) -> Path:
        """Get full path to the directory holding a session's chunks."""
        return self.uploads_dir / session_id

    def commit(self, session_id: str, upload: ChunkUpload) -> str:
        """Move a staged upload to its final location.

        Args:
            session_id: Session identifier
            upload: Staged upload

        Returns:
            Final storage path
        """
        session_path = self.get_session_path(session_id)
        session_path.mkdir(parents=True, exist_ok=True)
        final_path = session_path / upload.filename

        os.replace(upload.staged_path, final_path)
        logger.info(f"Chunk stored: {final_path} ({upload.size} bytes)")
        return str(final_path)

    def discard(self, upload: ChunkUpload) -> None:
        """Remove a staged upload that will not be committed."""
        try:
            Path(upload.staged_path).unlink()
            logger.debug(f"Discarded staged upload: {upload.staged_path}")
        except FileNotFoundError:
            pass

    def get_storage_stats(self) -> Dict[str, Any]:
        """Get storage usage statistics.

        Returns:
            Dictionary with storage statistics
        """
        total_size = 0
        session_count = 0
        chunk_files = 0

        for session_path in self.uploads_dir.iterdir():
            if session_path.is_dir():
                session_count += 1
                for file_path in session_path.iterdir():
                    if file_path.is_file():
                        total_size += file_path.stat().st_size
                        if file_path.suffix == '.wav':
                            chunk_files += 1

        return {
            "total_size_bytes": total_size,
            "total_size_mb": round(total_size / (1024 * 1024), 2),
            "session_count": session_count,
            "chunk_files": chunk_files,
            "data_directory": str(self.data_dir)
        }

