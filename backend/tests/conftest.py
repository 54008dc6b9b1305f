import os
import sys
import pytest

# Ensure the backend root (containing the `rendezvous` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from rendezvous import create_app, db, get_services, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LIVE_NAMESPACE = '/ws'
    CORS_ORIGINS = ['*']
    LOG_LEVEL = 'DEBUG'
    PORT = 5000
    PROXIMITY_THRESHOLD_M = 100
    SCAN_REQUIRES_PROXIMITY = False
    VALIDATE_COORDINATE_RANGES = True


class FakeChannel:
    """In-memory channel recording every message it is sent."""

    def __init__(self, open_=True, fail=False):
        self.open = open_
        self.fail = fail
        self.sent = []

    def send(self, message):
        if self.fail:
            raise ConnectionError('socket closed mid-send')
        self.sent.append(message)

    def is_open(self):
        return self.open

    def types(self):
        return [m['type'] for m in self.sent]


class FakeSocketIO:
    """Stands in for the Socket.IO server in timer loops.

    Background tasks run inline, or are queued when ``inline`` is False.
    ``sleep`` never waits; it calls ``on_sleep`` with the number of sleeps
    so far, which is where a test stops the loop.
    """

    def __init__(self, on_sleep=None, inline=True):
        self.on_sleep = on_sleep
        self.inline = inline
        self.sleeps = []
        self.pending = []

    def start_background_task(self, target, *args):
        if self.inline:
            target(*args)
        else:
            self.pending.append((target, args))

    def run_pending(self):
        pending, self.pending = self.pending, []
        for target, args in pending:
            target(*args)

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep(len(self.sleeps))


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import rendezvous.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def services(flask_app):
    return get_services(flask_app)


@pytest.fixture()
def seeded(services):
    """Two participants per category, each with a token."""
    services.profiles.save('p1', name='Avery', category='A', token='token-p1')
    services.profiles.save('p2', name='Blake', category='B', token='token-p2')
    services.profiles.save('p3', name='Casey', category='A', token='token-p3')
    services.profiles.save('p4', name='Drew', category='B', token='token-p4')
    return services


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')
