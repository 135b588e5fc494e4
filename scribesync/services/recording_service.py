"""Recording service that ties sequencing, uploads and durability together."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..client.connectivity import ConnectivityMonitor, ConnectivityProbe
from ..client.coordinator import RetryPolicy, UploadCoordinator
from ..client.durability import DurabilityGuard
from ..client.pending_store import PendingUploadStore
from ..client.preferences import PreferenceStore
from ..client.sequencer import ChunkSequencer
from ..client.state_machine import transition
from ..client.transfer import TransferClient
from ..config import ScribeSyncConfig
from ..models.chunk import ChunkFile, ChunkStatus
from ..models.recording import RecordingEvent, RecordingState

logger = logging.getLogger(__name__)


class RecordingService:
    """Core service that manages the recording lifecycle on the device."""

    def __init__(self,
                 config: ScribeSyncConfig,
                 client: Optional[TransferClient] = None,
                 coordinator: Optional[UploadCoordinator] = None,
                 sequencer: Optional[ChunkSequencer] = None,
                 guard: Optional[DurabilityGuard] = None,
                 monitor: Optional[ConnectivityMonitor] = None,
                 probe: Optional[ConnectivityProbe] = None):
        """Initialize recording service.

        Collaborators not passed in are built from the configuration.

        Args:
            config: Application configuration
        """
        self.config = config
        spool_dir = config.get_spool_directory()

        self.client = client or TransferClient(
            base_url=config.get('client.base_url', 'http://localhost:3000'),
            connect_timeout=config.get('client.connect_timeout', 5),
            read_timeout=config.get('client.read_timeout', 10),
        )
        self.monitor = monitor or ConnectivityMonitor()
        self.coordinator = coordinator or UploadCoordinator(
            self.client,
            policy=RetryPolicy(
                max_attempts=config.get('upload.max_attempts', 3),
                delays=config.get_retry_delays(),
            ),
            pending_store=PendingUploadStore(f"{spool_dir}/pending.json"),
            monitor=self.monitor,
        )
        self.sequencer = sequencer or ChunkSequencer(
            spool_dir=spool_dir,
            sample_rate=config.get('audio.sample_rate', 44100),
            channels=config.get('audio.channels', 1),
            sample_width=config.get('audio.sample_width', 2),
            chunk_seconds=config.get('audio.chunk_seconds', 10),
        )
        self.sequencer.on_chunk = self.coordinator.enqueue

        self.guard = guard or DurabilityGuard(
            preferences=PreferenceStore(config.get('durability.preferences_file', 'data/scribe_sync_prefs.json')),
            monitor=self.monitor,
            on_connectivity_available=self.coordinator.on_connectivity_available,
            keepalive_interval=config.get('durability.keepalive_interval', 30),
        )
        self.probe = probe or ConnectivityProbe(
            self.client,
            self.monitor,
            interval=config.get('durability.probe_interval', 15),
        )

        self.current_session_id: Optional[str] = None
        self.chunks: List[ChunkFile] = []
        self._starting = False

        logger.info("RecordingService ready")

    @property
    def state(self) -> RecordingState:
        return self.coordinator.state

    @property
    def is_recording(self) -> bool:
        return self.state.is_active

    def _rejected(self, event: RecordingEvent) -> Optional[Dict[str, Any]]:
        result = transition(self.state, event)
        if result.ok:
            return None
        return {
            "success": False,
            "error": result.error.message,
            "state": self.state.value,
        }

    async def start_recording(self) -> Dict[str, Any]:
        """Create a remote session and start sequencing chunks for it.

        Returns:
            Result dictionary with success status and details
        """
        rejected = self._rejected(RecordingEvent.START)
        if rejected:
            return rejected

        if self._starting:
            return {"success": False, "error": "Start already in progress", "state": self.state.value}

        self._starting = True
        try:
            created = await self.client.create_session()
        finally:
            self._starting = False
        if not created:
            logger.error(f"Could not create session: {created.message}")
            return {
                "success": False,
                "error": created.message,
                "retryable": created.retryable,
            }

        session_id = created.value
        self.current_session_id = session_id
        self.chunks = []

        self.coordinator.begin_session(session_id)
        self.coordinator.start_worker()
        self.sequencer.begin(session_id)
        self.coordinator.handle(RecordingEvent.START)
        self.guard.activate(session_id)
        self.probe.start()

        logger.info(f"Started recording for session: {session_id}")
        return {
            "success": True,
            "session_id": session_id,
            "started_at": datetime.now().isoformat(),
        }

    def pause_recording(self) -> Dict[str, Any]:
        rejected = self._rejected(RecordingEvent.PAUSE)
        if rejected:
            return rejected
        self.coordinator.handle(RecordingEvent.PAUSE)
        return {"success": True, "session_id": self.current_session_id, "state": self.state.value}

    def resume_recording(self) -> Dict[str, Any]:
        rejected = self._rejected(RecordingEvent.RESUME)
        if rejected:
            return rejected
        self.coordinator.handle(RecordingEvent.RESUME)
        return {"success": True, "session_id": self.current_session_id, "state": self.state.value}

    async def stop_recording(self) -> Dict[str, Any]:
        """Stop recording, flush the last chunk and release the durability guard.

        Returns:
            Result dictionary with session data and chunk counts
        """
        rejected = self._rejected(RecordingEvent.STOP)
        if rejected:
            return rejected

        final_chunk = self.sequencer.end()
        if final_chunk:
            self.chunks.append(final_chunk)
        self.coordinator.handle(RecordingEvent.STOP)
        self.guard.deactivate()
        await self.probe.stop()

        logger.info(f"Session stopped: {self.current_session_id}")
        return {
            "success": True,
            "session_id": self.current_session_id,
            "stopped_at": datetime.now().isoformat(),
            "total_chunks": len(self.chunks),
        }

    def report_capture_failure(self, reason: str) -> Dict[str, Any]:
        """Audio capture broke; keep the chunks cut so far and enter the error state."""
        logger.error(f"Capture failed for session {self.current_session_id}: {reason}")
        final_chunk = self.sequencer.end()
        if final_chunk:
            self.chunks.append(final_chunk)
        self.coordinator.handle(RecordingEvent.CAPTURE_FAILURE)
        self.guard.deactivate()
        self.probe.cancel()
        return {"success": True, "session_id": self.current_session_id, "state": self.state.value}

    def on_audio_frame(self, data: bytes) -> List[ChunkFile]:
        """Feed captured PCM audio; frames arriving while not recording are ignored."""
        if not self.is_recording:
            logger.debug(f"Dropping {len(data)} bytes of audio while {self.state.value}")
            return []
        finished = self.sequencer.on_audio_frame(data)
        self.chunks.extend(finished)
        return finished

    def add_chunk_file(self, path: str) -> Dict[str, Any]:
        """Queue an already encoded chunk file for upload."""
        if not self.is_recording:
            return {"success": False, "error": f"Not recording ({self.state.value})"}
        try:
            chunk = self.sequencer.add_chunk_file(path)
        except OSError as e:
            logger.error(f"Cannot add chunk file {path}: {e}")
            return {"success": False, "error": str(e)}
        self.chunks.append(chunk)
        return {"success": True, "chunk_number": chunk.chunk_number, "path": chunk.path}

    async def recover_after_restart(self) -> Dict[str, Any]:
        """Report an interrupted recording and push any uploads left from the last run."""
        notice = self.guard.check_on_boot()
        restored = self.coordinator.restore_pending()
        confirmed = await self.coordinator.sweep_pending()
        return {
            "success": True,
            "interrupted": notice,
            "restored": restored,
            "confirmed": confirmed,
            "still_pending": len(self.coordinator.pending),
        }

    async def wait_until_idle(self) -> None:
        await self.coordinator.drain()

    def get_chunk_statuses(self) -> List[Dict[str, Any]]:
        statuses = self.coordinator.statuses
        return [
            {
                "session_id": session_id,
                "chunk_number": chunk_number,
                "status": status,
            }
            for (session_id, chunk_number), status in sorted(statuses.items())
        ]

    def get_status(self) -> Dict[str, Any]:
        statuses = self.coordinator.statuses.values()
        return {
            "state": self.state.value,
            "session_id": self.current_session_id,
            "chunks": len(self.chunks),
            "confirmed": sum(1 for s in statuses if s is ChunkStatus.CONFIRMED),
            "pending": len(self.coordinator.pending),
        }

    async def cleanup(self) -> None:
        """Clean up service resources."""
        if self.guard.is_active:
            self.guard.on_process_reclaimed()
        await self.probe.stop()
        await self.coordinator.stop_worker()
        await self.client.close()
        logger.info("RecordingService cleaned up")
