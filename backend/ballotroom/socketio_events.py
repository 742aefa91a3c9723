from flask_socketio import join_room, leave_room, emit
from flask import current_app, request
from ballotroom import socketio
from ballotroom.models import TABLES
from typing import Dict, Set

NAMESPACE = '/ws'

# Topics each socket has joined, so a disconnect can be logged and cleaned up
_sid_topics: Dict[str, Set[str]] = {}


def topic_for(room_id, table: str) -> str:
    return f"room:{room_id}:{table}"


def notify_change(room_id, table: str) -> None:
    """Tell subscribers of (room, table) to re-read. No payload is trusted by clients."""
    socketio.emit('changed', {'room_id': room_id, 'table': table}, to=topic_for(room_id, table), namespace=NAMESPACE)


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _parse_topic(data):
    data = data or {}
    room_id = data.get('room_id')
    table = data.get('table')
    if room_id is None or table not in TABLES:
        emit('error', {'message': f"room_id and table ({', '.join(TABLES)}) are required"})
        return None
    return topic_for(room_id, table)


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_disconnect(reason=None):
    topics = _sid_topics.pop(_get_sid(), set())
    if topics:
        current_app.logger.info(f"[ws-disconnect] sid={_get_sid()} topics={len(topics)}")


def handle_subscribe(data):
    topic = _parse_topic(data)
    if not topic:
        return
    join_room(topic)
    _sid_topics.setdefault(_get_sid(), set()).add(topic)
    emit('subscribed', {'topic': topic})


def handle_unsubscribe(data):
    topic = _parse_topic(data)
    if not topic:
        return
    leave_room(topic)
    _sid_topics.get(_get_sid(), set()).discard(topic)
    emit('unsubscribed', {'topic': topic})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = [NAMESPACE, '/'] if testing else [NAMESPACE]
    for ns in namespaces:
        socketio.on_event('connect', handle_connect, namespace=ns)
        socketio.on_event('disconnect', handle_disconnect, namespace=ns)
        socketio.on_event('subscribe', handle_subscribe, namespace=ns)
        socketio.on_event('unsubscribe', handle_unsubscribe, namespace=ns)
        socketio.on_event('ping', handle_ping, namespace=ns)
