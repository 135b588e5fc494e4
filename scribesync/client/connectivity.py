"""Network availability signals."""

import asyncio
import logging
from typing import Callable, Optional, Set

from pubsub import pub

from ..models.events import NETWORK_AVAILABLE_TOPIC

logger = logging.getLogger(__name__)


class Subscription:
    """Handle for one connectivity listener.

    pypubsub keeps only weak references to listeners; the monitor holds the
    handle until it is cancelled, which keeps the callback alive.
    """

    def __init__(self, on_available: Callable[[], None]):
        self.on_available = on_available
        self.active = True

    def _deliver(self) -> None:
        if self.active:
            self.on_available()


class ConnectivityMonitor:
    """Fires subscribers when the network goes from unavailable to available."""

    def __init__(self, topic: str = NETWORK_AVAILABLE_TOPIC, available: bool = True):
        self.topic = topic
        self.available = available
        self._subscriptions: Set[Subscription] = set()

    def subscribe(self, on_available: Callable[[], None]) -> Subscription:
        subscription = Subscription(on_available)
        pub.subscribe(subscription._deliver, self.topic)
        self._subscriptions.add(subscription)
        logger.debug(f"Connectivity listener subscribed ({len(self._subscriptions)} active)")
        return subscription

    def cancel(self, subscription: Subscription) -> None:
        if subscription not in self._subscriptions:
            return
        subscription.active = False
        pub.unsubscribe(subscription._deliver, self.topic)
        self._subscriptions.discard(subscription)
        logger.debug(f"Connectivity listener cancelled ({len(self._subscriptions)} active)")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def set_available(self, available: bool) -> bool:
        """Record the current network state.

        Returns:
            True if this call was an offline to online edge and listeners fired
        """
        was_available = self.available
        self.available = available

        if available and not was_available:
            logger.info("Network available again")
            pub.sendMessage(self.topic)
            return True
        if not available and was_available:
            logger.warning("Network unavailable")
        return False


class ConnectivityProbe:
    """Polls the ledger server's health route and feeds a ConnectivityMonitor."""

    def __init__(self, client, monitor: ConnectivityMonitor, interval: float = 15.0,
                 sleep: Callable = asyncio.sleep):
        self.client = client
        self.monitor = monitor
        self.interval = interval
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    async def check_once(self) -> bool:
        result = await self.client.health()
        self.monitor.set_available(bool(result))
        return bool(result)

    async def _run(self) -> None:
        while True:
            await self.check_once()
            await self._sleep(self.interval)

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Connectivity probe started (every {self.interval}s)")

    def cancel(self) -> Optional[asyncio.Task]:
        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
            logger.info("Connectivity probe stopped")
        return task

    async def stop(self) -> None:
        task = self.cancel()
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass
