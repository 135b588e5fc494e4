"""Upload coordinator: recording state, per-chunk retries and the pending queue.

Chunks are uploaded one at a time in the order the sequencer produced them.
Each request is tried a bounded number of times with escalating delays;
chunks that still fail on transient errors wait in the pending queue until
connectivity returns. Nothing is ever dropped silently.
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

from pubsub import pub

from ..models.chunk import ChunkFile, ChunkStatus, PendingUpload, UploadStage
from ..models.events import RECORDING_STATE_TOPIC
from ..models.recording import RecordingEvent, RecordingState
from ..models.results import TransferResult
from .connectivity import ConnectivityMonitor
from .pending_store import PendingUploadStore
from .state_machine import TransitionResult, transition

logger = logging.getLogger(__name__)

ChunkKey = Tuple[str, int]


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded attempts with escalating delays between them.

    The delay before attempt n is delays[n - 2], and the last delay repeats.
    With the default three attempts only the 1 s and 2 s delays are used;
    the 5 s step applies once max_attempts is raised above three.
    """
    max_attempts: int = 3
    delays: Tuple[float, ...] = (1.0, 2.0, 5.0)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if not self.delays:
            raise ValueError("delays must not be empty")

    def delay_before(self, attempt: int) -> float:
        """Delay before the given 1-based attempt; the last delay repeats."""
        index = min(max(attempt - 2, 0), len(self.delays) - 1)
        return self.delays[index]


class UploadCoordinator:
    """Owns the recording state and drives chunk uploads to confirmation."""

    def __init__(self,
                 client,
                 policy: Optional[RetryPolicy] = None,
                 pending_store: Optional[PendingUploadStore] = None,
                 monitor: Optional[ConnectivityMonitor] = None,
                 sleep: Callable[[float], Awaitable] = asyncio.sleep,
                 topic: str = RECORDING_STATE_TOPIC):
        """Initialize the coordinator.

        Args:
            client: TransferClient (or anything with the same coroutines)
            policy: Retry policy for upload and confirm requests
            pending_store: Spool file for the pending queue; in-memory only if None
            monitor: Marked unavailable when a chunk is parked, so the next
                successful health check schedules a sweep
            sleep: Coroutine used for backoff delays
            topic: Pub/sub topic recording state changes are published on
        """
        self.client = client
        self.policy = policy or RetryPolicy()
        self.pending_store = pending_store
        self.monitor = monitor
        self._sleep = sleep
        self.topic = topic

        self.state = RecordingState.STOPPED
        self.session_id: Optional[str] = None

        self._statuses: Dict[ChunkKey, ChunkStatus] = {}
        self._pending: "OrderedDict[ChunkKey, PendingUpload]" = OrderedDict()
        self._in_flight: Set[ChunkKey] = set()

        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._sweep_task: Optional[asyncio.Task] = None

        logger.info(f"UploadCoordinator initialized: {self.policy.max_attempts} attempts, "
                    f"delays {self.policy.delays}")

    # Recording state

    def handle(self, event: RecordingEvent) -> TransitionResult:
        """Apply a recording event; invalid events leave the state unchanged."""
        result = transition(self.state, event)
        if not result.ok:
            logger.warning(f"Ignored recording event: {result.error.message}")
            return result

        self.state = result.state
        logger.info(f"Recording state: {result.previous.value} -> {result.state.value}")

        if event is RecordingEvent.STOP and self.session_id:
            self.drop_pending(self.session_id)

        pub.sendMessage(self.topic, state=result.state, previous=result.previous)
        return result

    def begin_session(self, session_id: str) -> None:
        self.session_id = session_id

    # Status reporting

    def status_of(self, chunk: ChunkFile) -> Optional[ChunkStatus]:
        return self._statuses.get(chunk.key)

    @property
    def statuses(self) -> Dict[ChunkKey, ChunkStatus]:
        return dict(self._statuses)

    @property
    def pending(self) -> List[PendingUpload]:
        return list(self._pending.values())

    def _set_status(self, key: ChunkKey, status: ChunkStatus) -> None:
        self._statuses[key] = status
        logger.debug(f"Chunk {key[1]} of {key[0]}: {status.label}")

    # Worker

    def start_worker(self) -> None:
        """Start the worker that uploads queued chunks in order."""
        if self._worker and not self._worker.done():
            return
        if self._queue is None:
            self._queue = asyncio.Queue()
        self._worker = asyncio.get_running_loop().create_task(self._worker_loop())
        logger.info("Upload worker started")

    async def stop_worker(self) -> None:
        for task in (self._worker, self._sweep_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._worker = None
        self._sweep_task = None
        logger.info("Upload worker stopped")

    def enqueue(self, chunk: ChunkFile) -> None:
        """Queue a chunk behind those already waiting; used as the sequencer callback."""
        self.start_worker()
        self._set_status(chunk.key, ChunkStatus.QUEUED)
        self._queue.put_nowait(chunk)

    async def drain(self) -> None:
        """Wait until every queued chunk and any running sweep has been processed."""
        if self._queue is not None:
            await self._queue.join()
        await self.wait_for_sweep()

    async def _worker_loop(self) -> None:
        while True:
            chunk = await self._queue.get()
            try:
                await self.submit(chunk)
            except Exception as e:
                logger.error(f"Unexpected error uploading chunk {chunk.chunk_number}: {e}", exc_info=True)
                self._set_status(chunk.key, ChunkStatus.FAILED)
            finally:
                self._queue.task_done()

    # Per-chunk algorithm

    async def submit(self, chunk: ChunkFile) -> ChunkStatus:
        """Upload and confirm one chunk with retries.

        Returns:
            Final status: CONFIRMED, PENDING_RETRY or FAILED. A chunk that
            already has an attempt in flight is left alone and its current
            status returned.
        """
        return await self._dispatch(chunk, UploadStage.UPLOAD)

    async def _dispatch(self, chunk: ChunkFile, stage: UploadStage) -> ChunkStatus:
        key = chunk.key
        if key in self._in_flight:
            logger.debug(f"Chunk {chunk.chunk_number} of {chunk.session_id} already in flight")
            return self._statuses.get(key, ChunkStatus.UPLOADING)

        self._in_flight.add(key)
        try:
            return await self._deliver(chunk, stage)
        finally:
            self._in_flight.discard(key)

    async def _deliver(self, chunk: ChunkFile, stage: UploadStage) -> ChunkStatus:
        key = chunk.key
        label = f"chunk {chunk.chunk_number} of {chunk.session_id}"

        if stage is UploadStage.UPLOAD:
            self._set_status(key, ChunkStatus.UPLOADING)
            result = await self._with_retries(
                lambda: self.client.upload_chunk(chunk.session_id, chunk.chunk_number, chunk.path),
                f"Upload of {label}")
            if not result:
                return self._handle_failure(chunk, UploadStage.UPLOAD, result)
            self._set_status(key, ChunkStatus.UPLOADED)

        result = await self._with_retries(
            lambda: self.client.confirm_chunk(chunk.session_id, chunk.chunk_number, checksum=chunk.checksum),
            f"Confirmation of {label}")
        if not result:
            return self._handle_failure(chunk, UploadStage.CONFIRM, result)

        if self._pending.pop(key, None) is not None:
            self._persist_pending()
        self._set_status(key, ChunkStatus.CONFIRMED)
        logger.info(f"Confirmed {label}")
        return ChunkStatus.CONFIRMED

    async def _with_retries(self, call: Callable[[], Awaitable[TransferResult]],
                            description: str) -> TransferResult:
        attempts = self.policy.max_attempts
        result = None
        for attempt in range(1, attempts + 1):
            if attempt > 1:
                delay = self.policy.delay_before(attempt)
                logger.info(f"{description}: retrying in {delay}s (attempt {attempt}/{attempts})")
                await self._sleep(delay)

            result = await call()
            if result:
                return result
            if not result.retryable:
                return result
            logger.warning(f"{description} failed (attempt {attempt}/{attempts}): {result.message}")
        return result

    def _handle_failure(self, chunk: ChunkFile, stage: UploadStage, result: TransferResult) -> ChunkStatus:
        key = chunk.key
        if not result.retryable:
            logger.error(f"Chunk {chunk.chunk_number} of {chunk.session_id} rejected: {result.message}")
            if self._pending.pop(key, None) is not None:
                self._persist_pending()
            self._set_status(key, ChunkStatus.FAILED)
            return ChunkStatus.FAILED

        entry = self._pending.get(key) or PendingUpload(chunk=chunk)
        entry.stage = stage
        entry.attempts += self.policy.max_attempts
        entry.last_error = result.message
        self._pending[key] = entry
        self._persist_pending()

        self._set_status(key, ChunkStatus.PENDING_RETRY)
        logger.warning(f"Chunk {chunk.chunk_number} of {chunk.session_id} {ChunkStatus.PENDING_RETRY.label} "
                       f"({stage.value} stage, {entry.attempts} attempts so far)")
        if self.monitor is not None:
            self.monitor.set_available(False)
        return ChunkStatus.PENDING_RETRY

    # Pending queue

    def _persist_pending(self) -> None:
        if self.pending_store is not None:
            self.pending_store.save(self._pending.values())

    def restore_pending(self) -> int:
        """Load pending entries saved by a previous run."""
        if self.pending_store is None:
            return 0
        restored = 0
        for entry in self.pending_store.load():
            if entry.chunk.key in self._pending:
                continue
            self._pending[entry.chunk.key] = entry
            self._set_status(entry.chunk.key, ChunkStatus.PENDING_RETRY)
            restored += 1
        if restored:
            logger.info(f"Restored {restored} pending uploads")
        self._persist_pending()
        return restored

    def drop_pending(self, session_id: str) -> int:
        """Forget pending retries of a session that are not currently running."""
        dropped = [key for key, entry in self._pending.items()
                   if entry.chunk.session_id == session_id and key not in self._in_flight]
        for key in dropped:
            del self._pending[key]
            self._set_status(key, ChunkStatus.FAILED)
        if dropped:
            self._persist_pending()
            logger.warning(f"Dropped {len(dropped)} pending uploads of stopped session {session_id}")
        return len(dropped)

    async def sweep_pending(self) -> int:
        """Retry every pending chunk with the normal retry policy.

        Returns:
            Number of chunks confirmed by this sweep
        """
        entries = list(self._pending.values())
        if not entries:
            return 0

        logger.info(f"Sweeping {len(entries)} pending uploads")
        confirmed = 0
        for entry in entries:
            if entry.chunk.key not in self._pending:
                continue
            status = await self._dispatch(entry.chunk, entry.stage)
            if status is ChunkStatus.CONFIRMED:
                confirmed += 1

        logger.info(f"Sweep finished: {confirmed}/{len(entries)} confirmed, {len(self._pending)} still pending")
        return confirmed

    def on_connectivity_available(self) -> None:
        """Schedule a sweep; a sweep that is already running is not duplicated."""
        if self._sweep_task and not self._sweep_task.done():
            logger.debug("Sweep already running")
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Connectivity returned outside the event loop, sweep skipped")
            return
        self._sweep_task = loop.create_task(self.sweep_pending())

    async def wait_for_sweep(self) -> None:
        if self._sweep_task is not None:
            await self._sweep_task
