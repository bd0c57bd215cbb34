import asyncio
import itertools
from typing import Any

from loguru import logger

from cryptoglance.models import TrackerState


class StatePublisher:
    """A fan-out service that distributes tracker state to subscribers.

    Each subscriber registers an `asyncio.Queue` and receives every
    `TrackerState` published after it subscribed. This decouples the fetch
    core from the UI or any other consumer.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[int, asyncio.Queue[Any]] = {}
        self._id_generator = itertools.count(1)
        self._lock = asyncio.Lock()

    async def subscribe(self, queue: "asyncio.Queue[Any]") -> int:
        """Subscribes a queue to receive state updates.

        Returns:
            A unique subscription ID that can be used to unsubscribe.
        """
        async with self._lock:
            sub_id = next(self._id_generator)
            self._subscriptions[sub_id] = queue
            logger.info(f"New state subscription (ID: {sub_id}).")
            return sub_id

    async def unsubscribe(self, sub_id: int) -> None:
        async with self._lock:
            if self._subscriptions.pop(sub_id, None) is None:
                logger.warning(f"Attempted to unsubscribe with invalid ID: {sub_id}")
                return
            logger.info(f"Unsubscribed state subscription ID {sub_id}.")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, state: TrackerState) -> None:
        """Pushes a state snapshot to every subscriber without blocking."""
        # Copy so subscribe/unsubscribe during iteration is safe.
        for sub_id, queue in list(self._subscriptions.items()):
            try:
                queue.put_nowait(state)
            except asyncio.QueueFull:  # noqa: PERF203
                logger.warning(
                    f"Subscriber queue {sub_id} is full. "
                    "Update was dropped. This may indicate a slow consumer."
                )
