# backend/consignbook/state.py
"""
Application state container.

AppState owns the in-memory StateCache and the SyncChannel for one
application instance. It is created by create_app() and lives in
app.extensions["consignbook"]; nothing else holds module-level state.

Write path (local):  service commits -> publish_change() -> cache.apply()
                     -> channel.publish()
Read path (remote):  channel -> AppState.receive() -> cache.apply()

The cache is a projection and never the system of record. It is only
touched after a commit succeeds, so a failed operation leaves it as it was.
"""
from __future__ import annotations

import copy
import logging
import threading

from flask import Flask, current_app

from .sync import RELOAD_ALL, SYNC_ACTIONS, LocalChannel, SyncChannel, SyncMessage

logger = logging.getLogger(__name__)

EXTENSION_KEY = "consignbook"


class StateCache:
    COLLECTIONS = ("products", "partners", "consignments", "sales")

    def __init__(self):
        self._lock = threading.RLock()
        self._data: dict[str, dict[str, dict]] = {kind: {} for kind in self.COLLECTIONS}
        self.loaded = False

    def load(self) -> None:
        """Replace the cache with the committed contents of the store."""
        from .extensions import db
        from .models import ConsignmentOrder, Partner, Product, SaleRecord

        fresh = {
            "products": {p.id: p.to_dict() for p in db.session.query(Product).all()},
            "partners": {p.id: p.to_dict() for p in db.session.query(Partner).all()},
            "consignments": {c.id: c.to_dict() for c in db.session.query(ConsignmentOrder).all()},
            "sales": {s.id: s.to_dict() for s in db.session.query(SaleRecord).all()},
        }
        with self._lock:
            self._data = fresh
            self.loaded = True

    def ensure_loaded(self) -> None:
        if not self.loaded:
            self.load()

    def get(self, kind: str, record_id: str) -> dict | None:
        with self._lock:
            record = self._data[kind].get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def all(self, kind: str) -> list[dict]:
        with self._lock:
            return copy.deepcopy(list(self._data[kind].values()))

    def snapshot(self) -> dict:
        with self._lock:
            return copy.deepcopy(self._data)

    def apply(self, message: SyncMessage) -> bool:
        """
        Apply a change message. Returns False when the action is ignored.

        Patches replace the named fields (last write wins), so replaying a
        message leaves the cache unchanged.
        """
        if message.action not in SYNC_ACTIONS:
            logger.warning("Ignoring unknown sync action %r from %s", message.action, message.sender_id)
            return False

        if message.action == RELOAD_ALL:
            self.load()
            return True

        data = message.data or {}
        with self._lock:
            for kind in self.COLLECTIONS:
                for patch in data.get(kind) or ():
                    self._patch(kind, patch)
            for kind, ids in (data.get("deleted") or {}).items():
                if kind not in self._data:
                    logger.warning("Ignoring delete for unknown collection %r", kind)
                    continue
                for record_id in ids:
                    self._data[kind].pop(record_id, None)
        return True

    def _patch(self, kind: str, patch: dict) -> None:
        record_id = patch.get("id")
        if not record_id:
            logger.warning("Ignoring %s patch without id", kind)
            return
        current = self._data[kind].get(record_id) or {}
        self._data[kind][record_id] = {**current, **copy.deepcopy(patch)}


class AppState:
    def __init__(self, channel: SyncChannel, cache: StateCache | None = None, app: Flask | None = None):
        self.channel = channel
        self.cache = cache or StateCache()
        self.app = app
        self.channel.subscribe(self.receive)

    def receive(self, message: SyncMessage) -> None:
        if message.action == RELOAD_ALL and self.app is not None:
            with self.app.app_context():
                self.cache.apply(message)
            return
        self.cache.apply(message)

    def publish(self, action: str, data: dict | None = None) -> SyncMessage:
        message = SyncMessage(action=action, data=data or {}, sender_id=self.channel.sender_id)
        self.cache.apply(message)
        self.channel.publish(message)
        return message

    def close(self) -> None:
        self.channel.unsubscribe(self.receive)
        self.channel.close()


def init_app(app: Flask, channel: SyncChannel | None = None) -> AppState:
    if channel is None:
        channel = LocalChannel(app.config["SYNC_CHANNEL_NAME"])
    state = AppState(channel, app=app)
    app.extensions[EXTENSION_KEY] = state
    return state


def get_state() -> AppState:
    return current_app.extensions[EXTENSION_KEY]


def publish_change(
    action: str,
    *,
    products: list[dict] | None = None,
    partners: list[dict] | None = None,
    consignments: list[dict] | None = None,
    sales: list[dict] | None = None,
    deleted: dict[str, list[str]] | None = None,
) -> SyncMessage:
    """Publish a committed change. Call only after the transaction commits."""
    data: dict = {}
    if products:
        data["products"] = products
    if partners:
        data["partners"] = partners
    if consignments:
        data["consignments"] = consignments
    if sales:
        data["sales"] = sales
    if deleted:
        data["deleted"] = deleted
    return get_state().publish(action, data)
