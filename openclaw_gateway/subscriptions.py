"""Per-observer log stream subscriptions."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from openclaw_gateway.broadcaster import Observer
from openclaw_gateway.logs import LogRetriever, LogStream

logger = logging.getLogger(__name__)

LOG_LINE_EVENT = "log-line"


@dataclass(eq=False)
class Subscription:
    """An observer following one service's logs."""

    observer_id: str
    service: str
    stream: LogStream
    task: asyncio.Task


class LogSubscriptions:
    """Tracks at most one log stream per observer.

    Each subscription owns a follow-mode stream and a pump task that forwards
    lines to its observer only.
    """

    def __init__(self, retriever: LogRetriever):
        self.retriever = retriever
        self._subscriptions: dict[str, Subscription] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._subscriptions)

    def get(self, observer_id: str) -> Optional[Subscription]:
        return self._subscriptions.get(observer_id)

    async def subscribe(
        self, observer: Observer, service: str, tail: Optional[int] = None
    ) -> Subscription:
        """Follow a service's logs, replacing any stream the observer had.

        Raises:
            InvalidService: If the service is not registered.
            ContainerNotFound: If the service has no container.
            EngineUnavailable: If the engine cannot be reached.
        """
        await self.unsubscribe(observer.observer_id)

        stream = await self.retriever.open_stream(service, tail)
        task = asyncio.create_task(self._pump(observer, stream))
        subscription = Subscription(
            observer_id=observer.observer_id,
            service=stream.service,
            stream=stream,
            task=task,
        )

        async with self._lock:
            replaced = self._subscriptions.pop(observer.observer_id, None)
            self._subscriptions[observer.observer_id] = subscription
        if replaced is not None:
            await self._teardown(replaced)

        logger.info(f"Observer {observer.observer_id} subscribed to logs of '{stream.service}'")
        return subscription

    async def unsubscribe(self, observer_id: str) -> bool:
        """Stop an observer's log stream.

        Returns:
            True if the observer had a subscription.
        """
        async with self._lock:
            subscription = self._subscriptions.pop(observer_id, None)
        if subscription is None:
            return False

        await self._teardown(subscription)
        logger.info(f"Observer {observer_id} unsubscribed from logs of '{subscription.service}'")
        return True

    async def close_all(self) -> None:
        """Tear down every subscription."""
        async with self._lock:
            subscriptions = list(self._subscriptions.values())
            self._subscriptions.clear()
        for subscription in subscriptions:
            await self._teardown(subscription)
        if subscriptions:
            logger.info(f"Closed {len(subscriptions)} log subscription(s)")

    async def _teardown(self, subscription: Subscription) -> None:
        # Closing the stream first unblocks a read pending in a worker thread
        subscription.stream.close()
        subscription.task.cancel()
        try:
            await subscription.task
        except asyncio.CancelledError:
            pass

    async def _pump(self, observer: Observer, stream: LogStream) -> None:
        try:
            async for line in stream:
                await observer.send(LOG_LINE_EVENT, line.model_dump())
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Log stream for observer {observer.observer_id} ended: {e}")
        finally:
            stream.close()
