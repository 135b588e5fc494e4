"""Client side: chunk sequencing, transfer, retries and durability."""

from .transfer import TransferClient
from .state_machine import TransitionResult, transition
from .sequencer import ChunkSequencer, file_checksum
from .pending_store import PendingUploadStore
from .coordinator import RetryPolicy, UploadCoordinator
from .connectivity import ConnectivityMonitor, ConnectivityProbe, Subscription
from .preferences import PreferenceStore
from .durability import DurabilityGuard, ResumeIntent

__all__ = [
    "TransferClient",
    "TransitionResult",
    "transition",
    "ChunkSequencer",
    "file_checksum",
    "PendingUploadStore",
    "RetryPolicy",
    "UploadCoordinator",
    "ConnectivityMonitor",
    "ConnectivityProbe",
    "Subscription",
    "PreferenceStore",
    "DurabilityGuard",
    "ResumeIntent",
]
