"""Pytest configuration and fixtures for scribe-sync tests."""

import pytest
import asyncio
import tempfile
import logging
import random
from pathlib import Path
from typing import Any, Coroutine, Dict, List, TypeVar

import numpy as np
from pubsub import pub

from scribesync.config import ScribeSyncConfig
from scribesync.models.results import ErrorKind, TransferResult
from scribesync.storage import ChunkStore, InMemorySessionLedger


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

T = TypeVar("T")


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without network or disk-heavy work")
    config.addinivalue_line("markers", "integration: end-to-end tests against a local ledger server")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine synchronously for testing."""
    return asyncio.run(coro)


class FixedRandom(random.Random):
    """Random source whose randrange always returns the same value."""

    def __init__(self, value: int):
        super().__init__(0)
        self.value = value

    def randrange(self, *args, **kwargs):
        return self.value


class ScriptedClient:
    """Stand-in for TransferClient that replays scripted results.

    Each method pops the next result from its script; an exhausted script
    keeps answering with success.
    """

    def __init__(self):
        self.scripts: Dict[str, List[TransferResult]] = {
            "create_session": [],
            "upload_chunk": [],
            "confirm_chunk": [],
            "health": [],
        }
        self.calls: List[tuple] = []
        self.session_id = "test_001"
        self.closed = False

    def script(self, method: str, *results: TransferResult) -> None:
        self.scripts[method].extend(results)

    def _next(self, method: str, default: TransferResult) -> TransferResult:
        script = self.scripts[method]
        return script.pop(0) if script else default

    def calls_to(self, method: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == method]

    async def create_session(self) -> TransferResult:
        self.calls.append(("create_session",))
        return self._next("create_session", TransferResult.success(self.session_id))

    async def upload_chunk(self, session_id, chunk_number, file_path, target_url=None) -> TransferResult:
        self.calls.append(("upload_chunk", session_id, chunk_number))
        return self._next("upload_chunk", TransferResult.success({"message": "Chunk uploaded successfully"}))

    async def confirm_chunk(self, session_id, chunk_number, checksum=None) -> TransferResult:
        self.calls.append(("confirm_chunk", session_id, chunk_number, checksum))
        return self._next("confirm_chunk", TransferResult.success({"confirmed": True}))

    async def health(self) -> TransferResult:
        self.calls.append(("health",))
        return self._next("health", TransferResult.success({"message": "ok"}))

    async def close(self) -> None:
        self.closed = True


def transient(message: str = "Connection refused") -> TransferResult:
    return TransferResult.failure(ErrorKind.TRANSIENT, message)


class RecordingSleep:
    """Replacement for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def reset_pubsub():
    """Drop pub/sub listeners left over from a previous test."""
    yield
    pub.unsubAll()


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def chunk_store(temp_data_dir):
    return ChunkStore(temp_data_dir)


@pytest.fixture
def ledger(chunk_store):
    return InMemorySessionLedger(chunk_store)


@pytest.fixture
def scripted_client():
    return ScriptedClient()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def test_config(temp_data_dir):
    """Configuration with every path inside the temporary directory."""
    config = ScribeSyncConfig()
    config.set('storage.data_directory', str(Path(temp_data_dir) / "server"))
    config.set('client.spool_directory', str(Path(temp_data_dir) / "spool"))
    config.set('durability.preferences_file', str(Path(temp_data_dir) / "prefs.json"))
    config.set('logging.file_path', str(Path(temp_data_dir) / "logs" / "scribesync.log"))
    config.set('audio.sample_rate', 16000)
    config.set('audio.chunk_seconds', 1)
    config.set('upload.retry_delays', [0])
    return config


@pytest.fixture
def sample_audio_chunk():
    """Generate a sample audio chunk for testing."""
    # 1024 samples of 16-bit audio (sine wave)
    sample_rate = 16000
    duration = 1024 / sample_rate
    freq = 440  # A4 note

    t = np.linspace(0, duration, 1024, False)
    wave_data = np.sin(2 * np.pi * freq * t)

    audio_data = (wave_data * 32767).astype(np.int16)
    return audio_data.tobytes()


@pytest.fixture
def audio_test_data():
    """Generate various audio test data patterns."""
    def generate_audio(pattern="sine", duration_seconds=1.0, sample_rate=16000):
        """Generate audio data for testing.

        Args:
            pattern: Type of audio pattern ('sine', 'noise', 'silence')
            duration_seconds: Duration of audio
            sample_rate: Sample rate in Hz

        Returns:
            bytes: Audio data as bytes
        """
        samples = int(duration_seconds * sample_rate)

        if pattern == "sine":
            t = np.linspace(0, duration_seconds, samples, False)
            wave_data = np.sin(2 * np.pi * 440 * t)
        elif pattern == "noise":
            wave_data = np.random.uniform(-1, 1, samples)
        elif pattern == "silence":
            wave_data = np.zeros(samples)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")

        audio_data = (wave_data * 32767).astype(np.int16)
        return audio_data.tobytes()

    return generate_audio


@pytest.fixture
def chunk_file_factory(temp_data_dir):
    """Write chunk files of a given size and return their paths."""
    def make(name: str = "chunk_0.wav", size: int = 1024, fill: bytes = b"\x01") -> str:
        path = Path(temp_data_dir) / "local" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(fill * size)
        return str(path)

    return make
