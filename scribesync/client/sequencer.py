"""Cuts a continuous capture stream into numbered chunk files."""

import hashlib
import logging
import wave
from pathlib import Path
from typing import Callable, List, Optional

from pubsub import pub

from ..models.chunk import ChunkFile
from ..models.events import CHUNK_READY_TOPIC

logger = logging.getLogger(__name__)


def file_checksum(path: str) -> str:
    """SHA-256 hex digest of a file."""
    digest = hashlib.sha256()
    with open(path, 'rb') as f:
        for block in iter(lambda: f.read(8192), b''):
            digest.update(block)
    return digest.hexdigest()


class ChunkSequencer:
    """Assigns strictly increasing chunk numbers, starting at 0 per session.

    Chunks are handed to ``on_chunk`` and published on ``topic`` in the
    order they were captured. A number is never reused or skipped.
    """

    def __init__(self,
                 spool_dir: str,
                 sample_rate: int = 44100,
                 channels: int = 1,
                 sample_width: int = 2,
                 chunk_seconds: float = 10.0,
                 on_chunk: Optional[Callable[[ChunkFile], None]] = None,
                 topic: str = CHUNK_READY_TOPIC):
        """Initialize the sequencer.

        Args:
            spool_dir: Directory where chunk files are written
            sample_rate: PCM sample rate of incoming frames
            channels: Number of audio channels
            sample_width: Bytes per sample
            chunk_seconds: Audio duration of one chunk
            on_chunk: Called with every finished chunk, in order
            topic: Pub/sub topic chunks are published on
        """
        self.spool_dir = Path(spool_dir)
        self.sample_rate = sample_rate
        self.channels = channels
        self.sample_width = sample_width
        self.chunk_bytes = int(sample_rate * channels * sample_width * chunk_seconds)
        self.on_chunk = on_chunk
        self.topic = topic

        self.session_id: Optional[str] = None
        self.next_chunk_number = 0
        self._buffer = bytearray()

        if self.chunk_bytes <= 0:
            raise ValueError("chunk_seconds must produce at least one byte per chunk")

        logger.info(f"ChunkSequencer initialized: {chunk_seconds}s chunks "
                    f"({self.chunk_bytes} bytes) in {self.spool_dir}")

    @property
    def session_dir(self) -> Path:
        return self.spool_dir / self.session_id

    @property
    def buffered_bytes(self) -> int:
        return len(self._buffer)

    def begin(self, session_id: str) -> None:
        """Start numbering chunks of a new session from 0."""
        self.session_id = session_id
        self.next_chunk_number = 0
        self._buffer.clear()
        self.session_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Sequencing chunks for session {session_id}")

    def _require_session(self) -> None:
        if self.session_id is None:
            raise RuntimeError("ChunkSequencer.begin() must be called before adding audio")

    def on_audio_frame(self, data: bytes, final: bool = False) -> List[ChunkFile]:
        """Buffer PCM audio and cut chunk files whenever enough is collected.

        Args:
            data: Raw PCM bytes
            final: Flush whatever remains into a last, shorter chunk

        Returns:
            Chunks finished by this call
        """
        self._require_session()
        self._buffer.extend(data)

        finished = []
        while len(self._buffer) >= self.chunk_bytes:
            pcm = bytes(self._buffer[:self.chunk_bytes])
            del self._buffer[:self.chunk_bytes]
            finished.append(self._write_chunk(pcm))

        if final:
            chunk = self.flush()
            if chunk:
                finished.append(chunk)
        return finished

    def flush(self) -> Optional[ChunkFile]:
        """Write buffered audio as a chunk, if there is any."""
        if not self._buffer:
            return None
        self._require_session()
        pcm = bytes(self._buffer)
        self._buffer.clear()
        return self._write_chunk(pcm)

    def add_chunk_file(self, path: str) -> ChunkFile:
        """Number a chunk file produced by an external encoder."""
        self._require_session()
        if not Path(path).is_file():
            raise FileNotFoundError(f"Chunk file not found: {path}")
        number = self._take_number()
        return self._emit(number, Path(path))

    def end(self) -> Optional[ChunkFile]:
        """Flush the remaining audio and close the session."""
        if self.session_id is None:
            return None
        chunk = self.flush()
        logger.info(f"Session {self.session_id} sequenced {self.next_chunk_number} chunks")
        self.session_id = None
        return chunk

    def _take_number(self) -> int:
        number = self.next_chunk_number
        self.next_chunk_number += 1
        return number

    def _write_chunk(self, pcm: bytes) -> ChunkFile:
        number = self._take_number()
        path = self.session_dir / f"chunk_{number}.wav"
        with wave.open(str(path), 'wb') as wf:
            wf.setnchannels(self.channels)
            wf.setsampwidth(self.sample_width)
            wf.setframerate(self.sample_rate)
            wf.writeframes(pcm)
        return self._emit(number, path)

    def _emit(self, number: int, path: Path) -> ChunkFile:
        chunk = ChunkFile(
            session_id=self.session_id,
            chunk_number=number,
            path=str(path),
            size=path.stat().st_size,
            checksum=file_checksum(str(path)),
        )
        logger.info(f"Chunk {number} ready for session {self.session_id}: {path.name} ({chunk.size} bytes)")

        if self.on_chunk:
            self.on_chunk(chunk)
        pub.sendMessage(self.topic, chunk=chunk)
        return chunk
