import os
import sys
import pytest

# `config` and `scrumpoker` import from backend/
BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

from scrumpoker import create_app, socketio
from scrumpoker.dispatcher import RoomEventDispatcher
from scrumpoker.protocol import OTHERS, ROOM, SENDER
from scrumpoker.rooms import RoomStore
from scrumpoker.services.timer import TimerService
from scrumpoker.sessions import SessionRegistry

NAMESPACE = '/ws'


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    ALLOWED_ORIGINS = ['http://localhost:3000']
    SOCKETIO_NAMESPACE = NAMESPACE
    TEAM_DEFAULTS_PATH = None
    DEFAULT_TIMER_DURATION_SEC = 300
    TIMER_BROADCAST_INTERVAL_SEC = 30
    OBSERVERS_CAN_VOTE = True
    STRICT_ESTIMATION_TYPES = False
    ROOM_MAX_IDLE_SEC = 24 * 60 * 60


class RecordingBroadcaster:
    """Stands in for Socket.IO: tracks channel membership and who got what."""

    def __init__(self):
        self.channels = {}
        self.deliveries = []  # (recipient sid, event, payload)

    def enter(self, sid, room_code):
        self.channels.setdefault(room_code, set()).add(sid)

    def exit(self, sid, room_code):
        self.channels.get(room_code, set()).discard(sid)

    def deliver(self, notices, sid=None):
        for notice in notices:
            if notice.scope == SENDER:
                recipients = [sid] if sid is not None else []
            else:
                recipients = sorted(self.channels.get(notice.room, set()))
                if notice.scope == OTHERS:
                    recipients = [r for r in recipients if r != sid]
            for recipient in recipients:
                self.deliveries.append((recipient, notice.event, notice.payload))

    def received(self, sid, event=None):
        return [
            payload for recipient, name, payload in self.deliveries
            if recipient == sid and (event is None or name == event)
        ]

    def events_for(self, sid):
        return [name for recipient, name, _ in self.deliveries if recipient == sid]

    def clear(self):
        self.deliveries.clear()


@pytest.fixture()
def store():
    return RoomStore()


@pytest.fixture()
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture()
def timers(store, broadcaster):
    return TimerService(store, broadcaster, broadcast_interval=30)


@pytest.fixture()
def dispatcher(store, broadcaster, timers):
    return RoomEventDispatcher(store, SessionRegistry(), timers, broadcaster)


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        yield application


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def make_sio_client(flask_app):
    clients = []

    def _make():
        test_client = socketio.test_client(flask_app, namespace=NAMESPACE)
        clients.append(test_client)
        return test_client

    yield _make
    for test_client in clients:
        try:
            if test_client.is_connected(NAMESPACE):
                test_client.disconnect(namespace=NAMESPACE)
        except Exception:
            pass


@pytest.fixture()
def sio_client(make_sio_client):
    return make_sio_client()
