# backend/consignbook/sync.py
"""
Cross-context change notification.

Each committed engine operation emits one SyncMessage. Other contexts on
the same device apply it to their StateCache without re-running business
logic; they trust the originating context's computed result.

Delivery is fire-and-forget and at-most-once. A channel never receives its
own messages. Wire shape: {action, data, timestamp, senderId}.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable

from blinker import Namespace

from .time_utils import epoch_millis

logger = logging.getLogger(__name__)

ADD_PRODUCT = "ADD_PRODUCT"
UPDATE_PRODUCT = "UPDATE_PRODUCT"
DELETE_PRODUCT = "DELETE_PRODUCT"
ADD_PARTNER = "ADD_PARTNER"
UPDATE_PARTNER = "UPDATE_PARTNER"
ADD_CONSIGNMENT = "ADD_CONSIGNMENT"
UPDATE_CONSIGNMENT_STATUS = "UPDATE_CONSIGNMENT_STATUS"
UPDATE_CONSIGNMENT = "UPDATE_CONSIGNMENT"
DELETE_CONSIGNMENT = "DELETE_CONSIGNMENT"
ADD_SALE = "ADD_SALE"
STOCK_ADJUSTMENT = "STOCK_ADJUSTMENT"
RELOAD_ALL = "RELOAD_ALL"

SYNC_ACTIONS = frozenset({
    ADD_PRODUCT,
    UPDATE_PRODUCT,
    DELETE_PRODUCT,
    ADD_PARTNER,
    UPDATE_PARTNER,
    ADD_CONSIGNMENT,
    UPDATE_CONSIGNMENT_STATUS,
    UPDATE_CONSIGNMENT,
    DELETE_CONSIGNMENT,
    ADD_SALE,
    STOCK_ADJUSTMENT,
    RELOAD_ALL,
})

# Same-process "broadcast channels": one blinker signal per channel name
_channels = Namespace()


@dataclass(frozen=True)
class SyncMessage:
    action: str
    data: Any = None
    timestamp: int = field(default_factory=epoch_millis)
    sender_id: str = "unknown"

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "data": self.data,
            "timestamp": self.timestamp,
            "senderId": self.sender_id,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "SyncMessage":
        return cls(
            action=payload.get("action", ""),
            data=payload.get("data"),
            timestamp=int(payload.get("timestamp") or 0),
            sender_id=payload.get("senderId") or "unknown",
        )


Listener = Callable[[SyncMessage], None]


class SyncChannel:
    """
    Transport-neutral channel interface.

    Subclasses implement publish(); received messages go through _deliver()
    so a failing listener never blocks the others.
    """

    def __init__(self, name: str, sender_id: str | None = None):
        self.name = name
        self.sender_id = sender_id or uuid.uuid4().hex
        self._listeners: list[Listener] = []
        self.closed = False

    def publish(self, message: SyncMessage) -> None:
        raise NotImplementedError

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def close(self) -> None:
        self._listeners.clear()
        self.closed = True

    def _deliver(self, message: SyncMessage) -> None:
        logger.debug("sync message received on %s: %s", self.name, message.action)
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.exception("sync listener failed for action %s", message.action)


class LocalChannel(SyncChannel):
    """
    In-process broadcast between every LocalChannel sharing a name.

    Messages cross the channel as JSON text, so payloads must be
    wire-safe and receivers get their own copy.
    """

    def __init__(self, name: str, sender_id: str | None = None):
        super().__init__(name, sender_id)
        self._signal = _channels.signal(name)
        self._signal.connect(self._on_signal)

    def publish(self, message: SyncMessage) -> None:
        if self.closed:
            logger.warning("publish on closed channel %s dropped: %s", self.name, message.action)
            return
        try:
            wire = json.dumps(message.to_dict())
        except (TypeError, ValueError):
            logger.exception("sync message %s is not serializable; dropped", message.action)
            return
        self._signal.send(self, wire=wire)
        logger.debug("sync message broadcast on %s: %s", self.name, message.action)

    def _on_signal(self, sender, wire: str = "", **_kwargs) -> None:
        if sender is self:
            return
        message = SyncMessage.from_dict(json.loads(wire))
        if message.sender_id == self.sender_id:
            return
        self._deliver(message)

    def close(self) -> None:
        self._signal.disconnect(self._on_signal)
        super().close()
