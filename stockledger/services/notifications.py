"""
Stock Change Notifications
Fire-and-forget delivery of stock-changed events to subscribers
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Callable, List
import logging

from stockledger.core.timeutils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockChangedEvent:
    """Emitted once per completed transaction"""
    transaction_id: int
    type: str
    locations: List[int]
    reference: str = ""
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["occurred_at"] = self.occurred_at.isoformat()
        return data


Subscriber = Callable[[StockChangedEvent], None]


class NotificationSink:
    """
    Fan-out of stock-changed events

    Delivery and ordering are not guaranteed: a failing subscriber is
    logged and skipped, and never fails the completion that emitted it.
    """

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def publish(self, event: StockChangedEvent) -> None:
        logger.debug(f"stock-changed {event.to_dict()}")
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception as e:
                logger.warning(
                    f"Stock-changed subscriber {subscriber!r} failed for "
                    f"transaction {event.transaction_id}: {e}"
                )


class RecordingSubscriber:
    """Keeps every event it receives; handy for polling clients and tests"""

    def __init__(self):
        self.events: List[StockChangedEvent] = []

    def __call__(self, event: StockChangedEvent) -> None:
        self.events.append(event)


# Process-wide sink used by the API layer
stock_events = NotificationSink()
