"""Periodic and event-driven status pushes to connected observers."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from openclaw_gateway.models import ServiceStatus
from openclaw_gateway.resolver import StatusResolver
from openclaw_gateway.utils import iso_now

logger = logging.getLogger(__name__)

STATUS_PUSH_EVENT = "status-push"
SERVICE_UPDATED_EVENT = "service-updated"


@dataclass(eq=False)
class Observer:
    """A connected client that receives pushed events.

    ``send`` is awaited with an event type and its payload. It raises when the
    client can no longer be reached.
    """

    observer_id: str
    send: Callable[[str, Any], Awaitable[None]]


def status_map_payload(statuses: dict[str, ServiceStatus]) -> dict:
    return {
        "services": {name: status.model_dump(mode="json") for name, status in statuses.items()},
        "timestamp": iso_now(),
    }


class StatusBroadcaster:
    """Pushes status snapshots to subscribed observers.

    Observers are registered on connect. Subscribed observers receive a full
    snapshot on subscribe and then one every ``interval_seconds``. Every
    registered observer receives single-service updates after control actions.
    """

    def __init__(self, resolver: StatusResolver, interval_seconds: float = 30.0):
        """Initialize broadcaster.

        Args:
            resolver: Status resolver queried for every push.
            interval_seconds: Seconds between periodic snapshots.
        """
        self.resolver = resolver
        self.interval_seconds = interval_seconds
        self._observers: dict[str, Observer] = {}
        self._subscribed: set[str] = set()
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribed)

    def is_subscribed(self, observer_id: str) -> bool:
        return observer_id in self._subscribed

    def register(self, observer: Observer) -> None:
        self._observers[observer.observer_id] = observer
        logger.info(f"Observer registered: {observer.observer_id}")

    def unregister(self, observer_id: str) -> None:
        """Forget an observer. Unknown ids are ignored."""
        self._subscribed.discard(observer_id)
        if self._observers.pop(observer_id, None) is not None:
            logger.info(f"Observer unregistered: {observer_id}")

    async def subscribe(self, observer_id: str) -> bool:
        """Subscribe an observer to periodic snapshots and push one now.

        Returns:
            False if the observer is not registered or the first push failed.
        """
        observer = self._observers.get(observer_id)
        if observer is None:
            logger.warning(f"Cannot subscribe unknown observer: {observer_id}")
            return False

        self._subscribed.add(observer_id)
        statuses = await self.resolver.resolve_all()
        return await self._send(observer, STATUS_PUSH_EVENT, status_map_payload(statuses))

    def unsubscribe(self, observer_id: str) -> None:
        self._subscribed.discard(observer_id)

    async def _send(self, observer: Observer, event: str, data: Any) -> bool:
        """Send one event. An observer whose send fails is dropped."""
        try:
            await observer.send(event, data)
            return True
        except Exception as e:
            logger.warning(f"Dropping observer {observer.observer_id} after failed send: {e}")
            self.unregister(observer.observer_id)
            return False

    async def _send_all(self, observers: list[Observer], event: str, data: Any) -> int:
        results = await asyncio.gather(
            *(self._send(observer, event, data) for observer in observers)
        )
        return sum(1 for sent in results if sent)

    async def broadcast_status(self) -> int:
        """Resolve every service once and push the snapshot to subscribers.

        Returns:
            Number of observers the snapshot reached.
        """
        observers = [
            self._observers[oid] for oid in list(self._subscribed) if oid in self._observers
        ]
        if not observers:
            return 0
        statuses = await self.resolver.resolve_all()
        return await self._send_all(observers, STATUS_PUSH_EVENT, status_map_payload(statuses))

    async def push_service(self, service: str) -> int:
        """Push the fresh status of one service to every registered observer.

        Returns:
            Number of observers the update reached.
        """
        status = await self.resolver.resolve(service)
        data = {
            "service": service,
            "status": status.model_dump(mode="json"),
            "timestamp": iso_now(),
        }
        return await self._send_all(list(self._observers.values()), SERVICE_UPDATED_EVENT, data)

    async def start(self) -> None:
        """Start the periodic broadcast task."""
        if self._running:
            logger.warning("Status broadcaster already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_broadcast_loop())
        logger.info(f"Status broadcaster started (interval={self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the periodic broadcast task."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Status broadcaster stopped")

    async def _run_broadcast_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)
                sent = await self.broadcast_status()
                if sent:
                    logger.debug(f"Pushed status snapshot to {sent} observer(s)")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Status broadcast failed: {e}")
