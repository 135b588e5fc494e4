"""Spool file for chunks that are waiting for connectivity."""

import json
import logging
import os
from pathlib import Path
from typing import Iterable, List

from ..models.chunk import PendingUpload
from .sequencer import file_checksum

logger = logging.getLogger(__name__)


class PendingUploadStore:
    """Persists the pending-retry queue so it survives a restart."""

    def __init__(self, path: str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def save(self, entries: Iterable[PendingUpload]) -> None:
        """Atomically replace the spool file with the given entries."""
        data = {"pending": [entry.to_dict() for entry in entries]}
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)
        logger.debug(f"Saved {len(data['pending'])} pending uploads to {self.path}")

    def load(self) -> List[PendingUpload]:
        """Read pending entries back, keeping only chunks still intact on disk.

        An entry is dropped when its file is missing or its size or checksum
        no longer matches what was recorded when the chunk was cut.
        """
        if not self.path.exists():
            return []

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Cannot read pending spool {self.path}: {e}")
            return []

        entries = []
        for raw in data.get("pending", []):
            try:
                entry = PendingUpload.from_dict(raw)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed pending entry: {e}")
                continue
            if self._is_intact(entry):
                entries.append(entry)

        logger.info(f"Recovered {len(entries)} pending uploads from {self.path}")
        return entries

    @staticmethod
    def _is_intact(entry: PendingUpload) -> bool:
        chunk = entry.chunk
        path = Path(chunk.path)
        if not path.is_file():
            logger.warning(f"Pending chunk {chunk.chunk_number} of {chunk.session_id} is gone: {path}")
            return False
        if path.stat().st_size != chunk.size:
            logger.warning(f"Pending chunk {chunk.chunk_number} of {chunk.session_id} changed size, dropping")
            return False
        if file_checksum(str(path)) != chunk.checksum:
            logger.warning(f"Pending chunk {chunk.chunk_number} of {chunk.session_id} failed checksum, dropping")
            return False
        return True
