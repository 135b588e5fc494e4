"""Keeps recording intent on disk and reports interrupted recordings after restart."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from pubsub import pub

from ..models.events import RECORDING_INTERRUPTED_TOPIC, InterruptedRecording
from .connectivity import ConnectivityMonitor, Subscription
from .preferences import PreferenceStore

logger = logging.getLogger(__name__)

RESUME_KEY = "resume_recording"
SESSION_KEY = "last_active_session"
ACTIVE_AT_KEY = "last_active_at"


@dataclass
class ResumeIntent:
    """Whether a recording was running when the process last saved state."""
    active: bool
    session_id: Optional[str] = None
    last_active_at: Optional[datetime] = None


class DurabilityGuard:
    """Persists the resume intent while a recording runs.

    While active it also listens for connectivity to sweep pending uploads
    and refreshes a heartbeat timestamp, so an interruption can be dated.
    """

    def __init__(self,
                 preferences: PreferenceStore,
                 monitor: ConnectivityMonitor,
                 on_connectivity_available: Callable[[], None],
                 keepalive_interval: float = 30.0,
                 sleep: Callable = asyncio.sleep):
        self.preferences = preferences
        self.monitor = monitor
        self.on_connectivity_available = on_connectivity_available
        self.keepalive_interval = keepalive_interval
        self._sleep = sleep

        self._subscription: Optional[Subscription] = None
        self._keepalive_task: Optional[asyncio.Task] = None
        self.session_id: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self._subscription is not None

    def read_intent(self) -> ResumeIntent:
        last_active = self.preferences.get(ACTIVE_AT_KEY)
        return ResumeIntent(
            active=self.preferences.get_bool(RESUME_KEY),
            session_id=self.preferences.get(SESSION_KEY),
            last_active_at=datetime.fromisoformat(last_active) if last_active else None,
        )

    def activate(self, session_id: str) -> None:
        """Record that a session is being captured and start watching connectivity."""
        self.session_id = session_id
        self.preferences.update(**{
            RESUME_KEY: True,
            SESSION_KEY: session_id,
            ACTIVE_AT_KEY: datetime.now().isoformat(),
        })

        if self._subscription is None:
            self._subscription = self.monitor.subscribe(self.on_connectivity_available)
        self._start_keepalive()
        logger.info(f"Durability guard active for session {session_id}")

    def deactivate(self) -> None:
        """Clear the resume intent after an explicit stop or a capture failure."""
        self.preferences.put(RESUME_KEY, False)
        self._release()
        logger.info(f"Durability guard released for session {self.session_id}")

    def on_process_reclaimed(self) -> None:
        """The host is ending the process; release resources and clear the intent."""
        logger.warning(f"Process reclaimed while recording session {self.session_id}")
        self.deactivate()

    def _release(self) -> None:
        if self._subscription is not None:
            self.monitor.cancel(self._subscription)
            self._subscription = None
        if self._keepalive_task is not None:
            self._keepalive_task.cancel()
            self._keepalive_task = None

    def _start_keepalive(self) -> None:
        if self._keepalive_task and not self._keepalive_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, keep-alive heartbeat disabled")
            return
        self._keepalive_task = loop.create_task(self._keep_alive())

    async def _keep_alive(self) -> None:
        while True:
            await self._sleep(self.keepalive_interval)
            self.preferences.put(ACTIVE_AT_KEY, datetime.now().isoformat())
            logger.debug(f"Keep-alive heartbeat for session {self.session_id}")

    def check_on_boot(self) -> Optional[InterruptedRecording]:
        """Report a recording that was still running when the process died.

        Capture is never restarted automatically. The intent is cleared and
        the notice published so the user learns the session ended early.
        """
        intent = self.read_intent()
        if not intent.active:
            logger.debug("No interrupted recording found")
            return None

        notice = InterruptedRecording(session_id=intent.session_id, last_active_at=intent.last_active_at)
        self.preferences.put(RESUME_KEY, False)
        logger.warning(notice.message)
        pub.sendMessage(RECORDING_INTERRUPTED_TOPIC, notice=notice)
        return notice
