"""Session ledger persisted as one JSON document per session."""

import json
import logging
import os
import random
from pathlib import Path
from typing import Optional

from ..models.session import Session
from .chunk_store import ChunkStore
from .ledger import InMemorySessionLedger

logger = logging.getLogger(__name__)


class JsonFileSessionLedger(InMemorySessionLedger):
    """Ledger that survives restarts by writing ``session_info.json`` files.

    Every mutation rewrites the affected session's document; all sessions
    are loaded back into memory when the ledger is created.
    """

    INFO_FILENAME = "session_info.json"

    def __init__(self, store: ChunkStore, rng: Optional[random.Random] = None,
                 id_prefix: str = "test_", id_digits: int = 3):
        super().__init__(store, rng=rng, id_prefix=id_prefix, id_digits=id_digits)
        self._load_sessions()

    def _info_file(self, session_id: str) -> Path:
        return self.store.sessions_dir / session_id / self.INFO_FILENAME

    def _load_sessions(self) -> None:
        """Load every stored session document."""
        loaded = 0
        for path in sorted(self.store.sessions_dir.iterdir()):
            info_file = path / self.INFO_FILENAME
            if not info_file.exists():
                continue
            try:
                with open(info_file, 'r', encoding='utf-8') as f:
                    session = Session.from_dict(json.load(f))
            except (ValueError, KeyError) as e:
                logger.error(f"Skipping unreadable session info {info_file}: {e}")
                continue
            self._sessions[session.session_id] = session
            loaded += 1

        logger.info(f"Loaded {loaded} sessions from {self.store.sessions_dir}")

    def _on_session_changed(self, session: Session) -> None:
        info_file = self._info_file(session.session_id)
        info_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = info_file.with_suffix(".tmp")

        with open(tmp_file, 'w', encoding='utf-8') as f:
            json.dump(session.to_dict(), f, indent=2)
        os.replace(tmp_file, info_file)

        logger.debug(f"Session info saved: {info_file}")
