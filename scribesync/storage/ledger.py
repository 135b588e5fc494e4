"""Authoritative session/chunk ledger.

The ledger is the only place where sessions and chunks are mutated. Chunk
uploads and confirmations for one session are serialized by a per-session
lock; operations on different sessions never wait for each other.
"""

import asyncio
import copy
import logging
import random
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from ..errors import NotFoundError, ValidationError
from ..models.session import Chunk, ChunkUpload, Session
from .chunk_store import ChunkStore

logger = logging.getLogger(__name__)


class SessionLedger(ABC):
    """Storage abstraction for recording sessions and their chunks."""

    @abstractmethod
    async def create_session(self) -> Session:
        """Allocate a new active session with no chunks."""
        pass

    @abstractmethod
    async def lookup(self, session_id: str) -> Session:
        """Return a snapshot of a session.

        Raises:
            NotFoundError: if the session does not exist
        """
        pass

    @abstractmethod
    async def record_chunk(self, session_id: str, chunk_number: int,
                           upload: ChunkUpload) -> Tuple[Chunk, bool]:
        """Record an uploaded chunk.

        Args:
            session_id: Session identifier
            chunk_number: Non-negative chunk number
            upload: Staged file for the chunk

        Returns:
            The chunk record and whether it was created by this call. A
            chunk number that is already recorded returns the existing
            record unchanged and the staged file is discarded.

        Raises:
            NotFoundError: if the session does not exist
        """
        pass

    @abstractmethod
    async def confirm_chunk(self, session_id: str, chunk_number: int,
                            checksum: Optional[str] = None) -> Chunk:
        """Mark a recorded chunk as confirmed by the client.

        Raises:
            NotFoundError: if the session or the chunk does not exist
        """
        pass

    @abstractmethod
    async def list_sessions(self) -> List[Session]:
        """Return snapshots of all sessions at call time."""
        pass


class InMemorySessionLedger(SessionLedger):
    """Ledger holding sessions in a dictionary for the life of the process."""

    RANDOM_ATTEMPTS = 20

    def __init__(self, store: ChunkStore, rng: Optional[random.Random] = None,
                 id_prefix: str = "test_", id_digits: int = 3):
        """Initialize the ledger.

        Args:
            store: Where committed chunk files are kept
            rng: Random source for session ids
            id_prefix: Prefix of generated session ids
            id_digits: Zero-padded width of the numeric id part
        """
        self.store = store
        self.id_prefix = id_prefix
        self.id_digits = id_digits
        self._rng = rng or random.Random()
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _allocate_id(self) -> str:
        """Pick a session id that is not used by any live session.

        Random draws come first; when they keep colliding the id space is
        scanned, and a full space is widened by one digit.
        """
        while True:
            width = self.id_digits
            space = 10 ** width
            for _ in range(self.RANDOM_ATTEMPTS):
                candidate = f"{self.id_prefix}{self._rng.randrange(space):0{width}d}"
                if candidate not in self._sessions:
                    return candidate
            for number in range(space):
                candidate = f"{self.id_prefix}{number:0{width}d}"
                if candidate not in self._sessions:
                    return candidate
            logger.warning(f"Session id space of {space} values exhausted, widening to {width + 1} digits")
            self.id_digits = width + 1

    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError("Session not found")
        return session

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    def _on_session_changed(self, session: Session) -> None:
        """Hook for persistent subclasses; called after every mutation."""

    async def create_session(self) -> Session:
        session_id = self._allocate_id()
        session = Session(session_id=session_id)
        self._sessions[session_id] = session
        self._on_session_changed(session)
        logger.info(f"Created new session: {session_id}")
        return session.snapshot()

    async def lookup(self, session_id: str) -> Session:
        return self._require(session_id).snapshot()

    async def record_chunk(self, session_id: str, chunk_number: int,
                           upload: ChunkUpload) -> Tuple[Chunk, bool]:
        if chunk_number < 0:
            raise ValidationError("chunkNumber must be a non-negative integer")
        self._require(session_id)

        async with self._lock_for(session_id):
            session = self._require(session_id)
            existing = session.find_chunk(chunk_number)
            if existing is not None:
                self.store.discard(upload)
                logger.info(f"Chunk {chunk_number} already exists for session {session_id}, skipping upload")
                return copy.deepcopy(existing), False

            storage_path = self.store.commit(session_id, upload)
            chunk = Chunk(
                session_id=session_id,
                chunk_number=chunk_number,
                filename=upload.filename,
                size=upload.size,
                storage_path=storage_path,
            )
            session.chunks.append(chunk)
            self._on_session_changed(session)

        logger.info(f"Uploaded chunk {chunk_number} for session {session_id} "
                    f"({session.total_chunks} chunks total)")
        return copy.deepcopy(chunk), True

    async def confirm_chunk(self, session_id: str, chunk_number: int,
                            checksum: Optional[str] = None) -> Chunk:
        self._require(session_id)

        async with self._lock_for(session_id):
            session = self._require(session_id)
            chunk = session.find_chunk(chunk_number)
            if chunk is None:
                raise NotFoundError("Chunk not found")

            chunk.confirmed = True
            chunk.confirmed_at = max(datetime.now(), chunk.uploaded_at)
            if checksum:
                chunk.checksum = checksum
            self._on_session_changed(session)

        logger.info(f"Confirmed chunk {chunk_number} for session {session_id}")
        return copy.deepcopy(chunk)

    async def list_sessions(self) -> List[Session]:
        sessions = [session.snapshot() for session in self._sessions.values()]
        logger.debug(f"Retrieved {len(sessions)} sessions")
        return sessions
