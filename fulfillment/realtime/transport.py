"""
In-process realtime transport.

Channels bind handlers to row-change events (table + INSERT/UPDATE/DELETE,
optionally filtered on column values of the new row) and receive every
``ChangeEvent`` the transport broadcasts while they are subscribed. A hosted
realtime service can replace this class as long as it exposes the same
``channel(name).on(...).subscribe()`` surface.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"
ANY_EVENT = "*"


@dataclass
class ChangeEvent:
    table: str
    event_type: str
    new: Dict[str, Any] = field(default_factory=dict)
    old: Dict[str, Any] = field(default_factory=dict)
    commit_timestamp: datetime = field(default_factory=datetime.utcnow)

    def __str__(self) -> str:
        row_id = (self.new or self.old).get("id")
        return f"ChangeEvent({self.event_type} {self.table} id={row_id})"


ChangeHandler = Callable[[ChangeEvent], None]


def _same(left, right) -> bool:
    return left == right or str(left) == str(right)


@dataclass
class Binding:
    event_type: str
    table: str
    handler: ChangeHandler
    filter: Optional[Dict[str, Any]] = None

    def matches(self, change: ChangeEvent) -> bool:
        if change.table != self.table:
            return False
        if self.event_type not in (ANY_EVENT, change.event_type):
            return False
        if self.filter:
            record = change.new if change.event_type != DELETE else change.old
            return all(_same(record.get(column), value) for column, value in self.filter.items())
        return True


class RealtimeChannel:
    def __init__(self, transport: "LocalRealtimeTransport", name: str):
        self._transport = transport
        self.name = name
        self.bindings: List[Binding] = []
        self.state = "closed"

    def on(self, event_type: str, table: str, handler: ChangeHandler, filter: Optional[dict] = None):
        self.bindings.append(Binding(event_type, table, handler, filter))
        return self

    def subscribe(self):
        self._transport._join(self)
        self.state = "joined"
        return self

    def unsubscribe(self) -> None:
        self._transport._leave(self)
        self.state = "closed"

    def deliver(self, change: ChangeEvent) -> int:
        delivered = 0
        for binding in self.bindings:
            if not binding.matches(change):
                continue
            delivered += 1
            try:
                binding.handler(change)
            except Exception:
                logger.exception(f"Handler on channel '{self.name}' failed for {change}")
        return delivered


class LocalRealtimeTransport:
    def __init__(self):
        self._channels: List[RealtimeChannel] = []
        self._lock = threading.Lock()

    def channel(self, name: str) -> RealtimeChannel:
        return RealtimeChannel(self, name)

    def _join(self, channel: RealtimeChannel) -> None:
        with self._lock:
            if channel not in self._channels:
                self._channels.append(channel)
        logger.debug(f"Channel '{channel.name}' joined")

    def _leave(self, channel: RealtimeChannel) -> None:
        with self._lock:
            if channel in self._channels:
                self._channels.remove(channel)
        logger.debug(f"Channel '{channel.name}' left")

    @property
    def channel_names(self) -> List[str]:
        with self._lock:
            return [c.name for c in self._channels]

    def broadcast(self, change: ChangeEvent) -> int:
        """Deliver ``change`` to every matching binding; returns how many ran."""
        with self._lock:
            channels = list(self._channels)

        delivered = 0
        for channel in channels:
            delivered += channel.deliver(change)

        logger.debug(f"Broadcast {change} to {delivered} handler(s)")
        return delivered
