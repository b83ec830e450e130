import os
import sys
import pytest

# Ensure the backend root (containing the `wavelength` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from wavelength import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = '*'
    MIN_PLAYERS = 2
    ROOM_MAX_PLAYERS = 8
    TWO_PLAYER_MAX_PLAYERS = 2
    MAX_NAME_LENGTH = 32
    MAX_CLUE_LENGTH = 100
    MAX_TOKEN_LENGTH = 64
    REVEAL_DURATION_SEC = 8
    RESYNC_INTERVAL_SEC = 3
    MATCHMAKING_STALE_SEC = 30
    MATCHMAKING_MATCH_TTL_SEC = 120
    # bcrypt's default cost makes the suite needlessly slow
    BCRYPT_LOG_ROUNDS = 4


def _build(config_class):
    application = create_app(config_class)
    with application.app_context():
        # Ensure models are imported so tables are created
        import wavelength.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def flask_app():
    yield from _build(TestConfig)


@pytest.fixture()
def file_app(tmp_path):
    """App on a file-backed SQLite database, for tests that race threads.

    Each thread opens its own connection, so writers really contend for the
    database lock instead of sharing one in-memory connection.
    """
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'wavelength.db'}"

    yield from _build(FileConfig)


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
def make_room(flask_app):
    """Create a room and seat extra players; returns (code, [tokens])."""
    from wavelength.services.games import rooms as room_store

    def _make(n_players=2, mode='two_player', **kwargs):
        if mode == 'two_player' and n_players > 2:
            # Seats for spectators watching a two-player game
            kwargs.setdefault('max_players', n_players)
        room, host, _ = room_store.create_room('p1', 'Player 1', mode=mode, **kwargs)
        code = room.code
        tokens = ['p1']
        for i in range(2, n_players + 1):
            room_store.join_room(code, f'p{i}', f'Player {i}', password=kwargs.get('password'))
            tokens.append(f'p{i}')
        return code, tokens

    return _make
