import os
import sys
import pytest

# Ensure the backend root (containing the `ballotroom` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from ballotroom import create_app, db, socketio
from ballotroom.client.channel import Subscription
from ballotroom.client.session import SessionHolder
from ballotroom.client.store import RoomStore


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = ['http://localhost:5173']
    CATALOG_PATH = ''
    ROOM_CODE_ATTEMPTS = 50


class FlaskTransport:
    """Store transport that calls the app in-process through the Flask test client."""

    def __init__(self, test_client):
        self.client = test_client
        self.calls = []

    async def request(self, method, path, payload=None, params=None):
        self.calls.append((method, path))
        res = self.client.open(path, method=method, json=payload, query_string=params)
        return res.status_code, res.get_json(silent=True)


class FakeChannel:
    """In-memory notification channel. ``publish`` delivers to matching live subscriptions."""

    def __init__(self):
        self.subs = []
        self.subscribe_calls = 0

    def subscribe(self, room_id, table, callback):
        self.subscribe_calls += 1
        sub = Subscription(self, room_id, table, callback)
        self.subs.append(sub)
        return sub

    def _remove(self, sub):
        self.subs.remove(sub)

    def publish(self, room_id, table):
        for sub in list(self.subs):
            if sub.active and sub.room_id == room_id and sub.table == table:
                sub.callback()

    def topics(self):
        return sorted((s.room_id, s.table) for s in self.subs)


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import ballotroom.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def store(client):
    return RoomStore(FlaskTransport(client))


@pytest.fixture()
def channel(monkeypatch):
    """Fake channel fed by every server-side change notification."""
    fake = FakeChannel()
    from ballotroom.services import rooms as svc
    original = svc.notify_change

    def bridged(room_id, table):
        original(room_id, table)
        fake.publish(room_id, table)

    monkeypatch.setattr(svc, 'notify_change', bridged)
    return fake


@pytest.fixture()
def session_path(tmp_path):
    return str(tmp_path / 'session.json')


@pytest.fixture()
def make_sessions(tmp_path):
    """One SessionHolder per simulated device."""
    def _make(device):
        return SessionHolder(str(tmp_path / f'{device}.json'))
    return _make
