"""Client side of the ballot room: local session, store and channel adapters, and the sync core."""
from ballotroom.client.channel import SocketIOChannel, Subscription
from ballotroom.client.lobby import create_room, join_room
from ballotroom.client.session import Session, SessionHolder
from ballotroom.client.store import RequestsTransport, RoomStore
from ballotroom.client.sync import RoomSync, SubscriptionHandle, TableSync

__all__ = [
    'RoomStore', 'RequestsTransport', 'SocketIOChannel', 'Subscription',
    'Session', 'SessionHolder', 'RoomSync', 'SubscriptionHandle', 'TableSync',
    'create_room', 'join_room',
]
