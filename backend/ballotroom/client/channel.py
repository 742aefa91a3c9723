"""
Notification channel client: one topic per (room, table).

Events say "this table changed" and nothing else; subscribers re-read the
table from the store. Callbacks run on the Socket.IO client's thread, so a
subscriber living on an event loop has to hop back onto it.
"""
import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

import socketio

from config import ClientConfig

logger = logging.getLogger(__name__)

Topic = Tuple[int, str]


class Subscription:
    """Handle for one topic subscription. ``unsubscribe`` is safe to call twice."""

    def __init__(self, channel, room_id: int, table: str, callback: Callable[[], None]):
        self.channel = channel
        self.room_id = room_id
        self.table = table
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self.channel._remove(self)


class SocketIOChannel:
    def __init__(self, url: Optional[str] = None, namespace: Optional[str] = None, client: Optional[socketio.Client] = None):
        self.url = url or ClientConfig.SERVER_URL
        self.namespace = namespace or ClientConfig.SOCKET_NAMESPACE
        self.sio = client or socketio.Client(reconnection=True)
        self._subs: Dict[Topic, List[Subscription]] = {}
        self._lock = threading.Lock()
        self._connected_once = False
        self.sio.on('connect', self._on_connect, namespace=self.namespace)
        self.sio.on('changed', self._on_changed, namespace=self.namespace)

    def connect(self) -> None:
        if not self.sio.connected:
            self.sio.connect(self.url, namespaces=[self.namespace])

    def disconnect(self) -> None:
        if self.sio.connected:
            self.sio.disconnect()

    def subscribe(self, room_id: int, table: str, callback: Callable[[], None]) -> Subscription:
        sub = Subscription(self, room_id, table, callback)
        with self._lock:
            first = not self._subs.get((room_id, table))
            self._subs.setdefault((room_id, table), []).append(sub)
        if first and self.sio.connected:
            self.sio.emit('subscribe', {'room_id': room_id, 'table': table}, namespace=self.namespace)
        return sub

    def subscription_count(self) -> int:
        with self._lock:
            return sum(len(subs) for subs in self._subs.values())

    def _remove(self, sub: Subscription) -> None:
        key = (sub.room_id, sub.table)
        with self._lock:
            subs = self._subs.get(key, [])
            if sub in subs:
                subs.remove(sub)
            last = not subs
            if last:
                self._subs.pop(key, None)
        if last and self.sio.connected:
            self.sio.emit('unsubscribe', {'room_id': sub.room_id, 'table': sub.table}, namespace=self.namespace)

    def _on_connect(self):
        with self._lock:
            topics = list(self._subs.keys())
            reconnect = self._connected_once
            self._connected_once = True
        for room_id, table in topics:
            self.sio.emit('subscribe', {'room_id': room_id, 'table': table}, namespace=self.namespace)
        if reconnect and topics:
            # Changes made while we were away were never delivered
            logger.info(f"[channel-reconnect] topics={len(topics)}")
            for room_id, table in topics:
                self._dispatch(room_id, table)

    def _on_changed(self, data):
        data = data or {}
        self._dispatch(data.get('room_id'), data.get('table'))

    def _dispatch(self, room_id, table) -> None:
        with self._lock:
            subs = list(self._subs.get((room_id, table), []))
        for sub in subs:
            if sub.active:
                sub.callback()
