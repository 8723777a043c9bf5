import os
import sys
from types import SimpleNamespace
import pytest

# Ensure the backend root (containing the `livequiz` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from livequiz import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    PIN_LENGTH = 6
    MAX_PLAYERS = 50
    CONTROLLER_DEBOUNCE_MS = 0


class RecordingBroadcaster:
    """Collects published events instead of emitting them."""

    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)

    def names(self):
        return [e.name for e in self.events]


@pytest.fixture()
def recorder():
    return RecordingBroadcaster()


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import livequiz.models  # noqa: F401
        db.create_all()
    # Requests push their own app context, so each test client gets its own `g`
    # (and its own logged-in user)
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def engine(flask_app):
    return flask_app.extensions['livequiz.engine']


def _make_user(username, password='password'):
    from livequiz.models import User
    user = User(username=username)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user.id


@pytest.fixture()
def host_user(flask_app):
    """Id of the quiz owner."""
    with flask_app.app_context():
        return _make_user('host')


@pytest.fixture()
def make_user(flask_app):
    def _make(username, password='password'):
        with flask_app.app_context():
            return _make_user(username, password)
    return _make


@pytest.fixture()
def quiz(flask_app, host_user):
    """A published quiz with one question of each type."""
    from livequiz.models import Quiz, Question
    with flask_app.app_context():
        quiz = Quiz(title='General Knowledge', owner_id=host_user, is_published=True)
        quiz.questions = [
            Question(text='Capital of France?', question_type='single-choice',
                     options=['Berlin', 'Paris', 'Rome'], correct_answer=1, order_index=0),
            Question(text='Pick the primes', question_type='multiple-choice',
                     options=['2', '4', '5'], correct_answer=[0, 2], points=2, order_index=1),
            Question(text='The earth is round.', question_type='true-false',
                     correct_answer=True, order_index=2),
            Question(text='Chemical symbol for gold?', question_type='short-answer',
                     correct_answer='Au', accepted_answers=['gold (au)'], order_index=3),
        ]
        db.session.add(quiz)
        db.session.commit()
        return SimpleNamespace(id=quiz.id, title=quiz.title,
                               question_ids=[str(q.id) for q in quiz.questions])


@pytest.fixture()
def question_ids(quiz):
    return quiz.question_ids


@pytest.fixture()
def login(flask_app):
    """Return a fresh test client logged in as ``username``."""
    def _login(username, password='password'):
        c = flask_app.test_client()
        res = c.post('/login', json={'username': username, 'password': password})
        assert res.status_code == 200
        return c
    return _login


@pytest.fixture()
def host_client(host_user, login):
    return login('host')


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
