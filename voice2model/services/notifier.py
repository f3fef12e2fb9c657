"""Client notifier: fans pipeline events out to connected push-channel observers."""

import json
import asyncio
import logging
from typing import Any, Dict, List, Set

from pubsub import pub

logger = logging.getLogger(__name__)

MODEL_READY_EVENT = "modelReady"


class ClientNotifier:
    """Broadcasts events to every connected observer, best-effort.

    Observers are WebSocket-like objects exposing ``closed`` and an async
    ``send_str``. ``notify`` never waits for delivery and never raises
    because an observer is gone.
    """

    def __init__(self, topic: str = "client.notifications"):
        """Initialize client notifier.

        Args:
            topic: Pub/sub topic the notifier listens on
        """
        self.topic = topic
        self.observers: List[Any] = []
        self._pending: Set[asyncio.Task] = set()
        pub.subscribe(self._broadcast, self.topic)
        logger.info(f"ClientNotifier listening on topic: {topic}")

    def subscribe(self, observer: Any) -> None:
        if observer not in self.observers:
            self.observers.append(observer)
            logger.info(f"Observer connected ({len(self.observers)} total)")

    def unsubscribe(self, observer: Any) -> None:
        if observer in self.observers:
            self.observers.remove(observer)
            logger.info(f"Observer disconnected ({len(self.observers)} total)")

    def notify(self, event_kind: str, payload: Dict[str, Any]) -> None:
        """Publish an event; delivery to observers happens in the background."""
        pub.sendMessage(self.topic, event_kind=event_kind, payload=payload)

    def _broadcast(self, event_kind: str, payload: Dict[str, Any]) -> None:
        message = json.dumps({"event": event_kind, **payload})
        loop = asyncio.get_running_loop()
        delivered = 0
        for observer in list(self.observers):
            if getattr(observer, "closed", True):
                continue
            task = loop.create_task(self._deliver(observer, message))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            delivered += 1
        logger.info(f"Notified {delivered} observer(s) of {event_kind}")

    async def _deliver(self, observer: Any, message: str) -> None:
        try:
            await observer.send_str(message)
        except (ConnectionError, RuntimeError) as e:
            logger.debug(f"Skipping observer that went away: {e}")

    async def close(self) -> None:
        """Close all observers and stop listening on the topic."""
        for observer in list(self.observers):
            if not getattr(observer, "closed", True):
                await observer.close()
        self.observers.clear()
        if pub.isSubscribed(self._broadcast, self.topic):
            pub.unsubscribe(self._broadcast, self.topic)
