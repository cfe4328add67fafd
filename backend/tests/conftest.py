import os
import random
import sys
import pytest

# Ensure the backend root (containing the `stopthebus` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from stopthebus import create_app, db, socketio
from stopthebus.services.rooms.engine import RoomEngine
from stopthebus.services.rooms.store import RoomStore


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = ['http://localhost:3000']
    MAX_ROUNDS = 10
    ROOM_CODE_LENGTH = 4
    ROOM_CODE_MAX_ATTEMPTS = 50
    MAX_NAME_LENGTH = 32
    ROUND_DURATION_SEC = 0
    ROOM_IDLE_TIMEOUT_SEC = 0
    DEFAULT_CATEGORIES = ['Boy', 'Girl', 'Country', 'Food', 'Colour', 'Car', 'Movie / TV Show']


def build_app(**overrides):
    config_class = type('OverrideConfig', (TestConfig,), overrides)
    return create_app(config_class)


@pytest.fixture()
def make_app():
    """Factory for apps with config overrides (e.g. a file database)."""
    return build_app


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
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
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


@pytest.fixture()
def store():
    return RoomStore()


@pytest.fixture()
def engine(store):
    return RoomEngine(store, rng=random.Random(1234), max_rounds=10)


@pytest.fixture()
def started_room(engine):
    """Ann hosts, Bob joins, categories Food/Car, game started."""
    code = engine.create_room('Ann').code
    engine.join_room(code, 'Bob')
    engine.set_categories(code, 'Ann', ['Food', 'Car'])
    engine.start_game(code, 'Ann')
    return code
