"""
EventBus: In-memory pub/sub system for simulation notifications.

Supports:
    - Topic-based messaging
    - Synchronous subscriber callbacks
    - Per-topic backlog drained by poll()
    - Logging of events

Intended usage:
    - The bus model publishes 'bus.passengers_alighted', 'bus.dwell_complete'
      and 'bus.lap_complete'; the world publishes 'car.lap_complete'
    - The throughput aggregator subscribes to those topics
    - The UI polls topics it wants to flash on screen
"""

import logging
from typing import Callable, Dict, List, Optional

from .message import Message
from .metrics import EventMetrics
from .utils import new_msg_id

log = logging.getLogger("events")

Handler = Callable[[Message], None]

PASSENGERS_ALIGHTED = "bus.passengers_alighted"
DWELL_COMPLETE = "bus.dwell_complete"
BUS_LAP_COMPLETE = "bus.lap_complete"
STOP_SKIPPED = "bus.stop_skipped"
STOP_ABANDONED = "bus.stop_abandoned"
CAR_LAP_COMPLETE = "car.lap_complete"


class EventBus:
    """
    Transport layer for simulation notifications.

    Attributes:
        keep_backlog (bool): If True, published messages are also queued for poll().
        metrics (EventMetrics): Counters for published / delivered / polled messages.
    """

    def __init__(self, keep_backlog: bool = True):
        """
        Initialize an EventBus instance.

        Args:
            keep_backlog (bool): Queue every message per topic so poll() can drain it.
        """
        self._topics: Dict[str, List[Message]] = {}
        self._handlers: Dict[str, List[Handler]] = {}
        self.keep_backlog = keep_backlog
        self.metrics = EventMetrics()

    def subscribe(self, topic: str, handler: Handler) -> None:
        """
        Register a callback invoked synchronously for every message on a topic.

        Args:
            topic (str): The topic name.
            handler (Callable[[Message], None]): Receives each published message.
        """
        self._handlers.setdefault(topic, []).append(handler)

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        """
        Remove a previously registered callback. Unknown handlers are ignored.

        Args:
            topic (str): The topic name.
            handler (Callable[[Message], None]): The callback to remove.
        """
        handlers = self._handlers.get(topic, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, topic: str, sender: str, payload: dict, ts: float = 0.0) -> str:
        """
        Publish a message to a specific topic.

        Args:
            topic (str): The topic name (e.g., 'bus.dwell_complete').
            sender (str): ID of the sender (e.g., 'bus-2').
            payload (dict): Arbitrary data dictionary representing the message contents.
            ts (float): Simulation time in milliseconds.

        Returns:
            str: The unique message ID.
        """
        msg = Message(id=new_msg_id(), topic=topic, sender=sender, payload=payload, ts=ts)
        self.metrics.published += 1
        if self.keep_backlog:
            self._topics.setdefault(topic, []).append(msg)
        log.debug("publish topic=%s sender=%s id=%s", topic, sender, msg.id)

        for handler in list(self._handlers.get(topic, [])):
            try:
                handler(msg)
                self.metrics.delivered += 1
            except Exception:
                self.metrics.handler_errors += 1
                log.exception("handler failed topic=%s sender=%s", topic, sender)
        return msg.id

    def poll(self, topic: str) -> List[Message]:
        """
        Retrieve and clear all messages from a given topic.

        Args:
            topic (str): The topic name to poll messages from.

        Returns:
            List[Message]: List of messages published to the topic since the last poll.
        """
        msgs = self._topics.get(topic, [])
        self._topics[topic] = []
        self.metrics.polled += len(msgs)
        return msgs

    def peek(self, topic: str) -> List[Message]:
        """
        Return the backlog of a topic without clearing it.

        Args:
            topic (str): The topic name.

        Returns:
            List[Message]: Copy of the queued messages.
        """
        return list(self._topics.get(topic, []))

    def clear(self, topic: Optional[str] = None) -> None:
        """
        Drop queued messages for one topic, or for every topic.

        Args:
            topic (Optional[str]): Topic to clear; all topics when None.
        """
        if topic is None:
            self._topics.clear()
        else:
            self._topics.pop(topic, None)
