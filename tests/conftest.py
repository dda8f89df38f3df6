import os
import sys
import pytest

# Ensure the project root (containing `config.py` and the `livequiz` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from config import Config
from livequiz import create_app, db, socketio
from livequiz.services.quiz import QuestionSpec, RoomManager


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SOCKETIO_NAMESPACE = '/'
    # End rooms as soon as the host disconnects; timers are inert under TESTING
    HOST_GRACE_SEC = 0
    REAPER_INTERVAL_SEC = 0


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingEmitter:
    """Records deliveries per connection, expanding room emits to their members."""

    def __init__(self):
        self.sent = []
        self.rooms = {}
        self.room_emits = []
        # Called with (event, payload, pin) after each room emit
        self.on_room_emit = None

    def emit(self, event, payload, to):
        self.sent.append((event, payload, to))

    def emit_room(self, event, payload, pin):
        self.room_emits.append((event, pin))
        for sid in list(self.rooms.get(pin, ())):
            self.sent.append((event, payload, sid))
        if self.on_room_emit is not None:
            self.on_room_emit(event, payload, pin)

    def enter_room(self, sid, pin):
        members = self.rooms.setdefault(pin, [])
        if sid not in members:
            members.append(sid)

    def leave_room(self, sid, pin):
        members = self.rooms.get(pin, [])
        if sid in members:
            members.remove(sid)

    def close_room(self, pin):
        self.rooms.pop(pin, None)

    def events(self, name=None, to=None):
        return [
            payload for event, payload, sid in self.sent
            if (name is None or event == name) and (to is None or sid == to)
        ]

    def names(self, to=None):
        return [event for event, _, sid in self.sent if to is None or sid == to]

    def clear(self):
        self.sent.clear()


class ManualScheduler:
    """Records scheduled tasks; tests fire them explicitly."""

    def __init__(self):
        self.tasks = []

    def schedule(self, delay, fn, *args, name=''):
        from livequiz.services.quiz.scheduler import ScheduledTask
        task = ScheduledTask(name)
        self.tasks.append((task, delay, fn, args))
        return task

    def pending(self, prefix=''):
        return [entry for entry in self.tasks if not entry[0].cancelled and entry[0].name.startswith(prefix)]

    def fire(self, prefix=''):
        """Run every pending task whose name starts with ``prefix``."""
        fired = 0
        for entry in self.pending(prefix):
            task, _, fn, args = entry
            self.tasks.remove(entry)
            if not task.cancelled:
                fn(*args)
                fired += 1
        return fired


def make_question(text='Q', correct_index=0, seconds=10, **kwargs):
    return QuestionSpec(
        text=text,
        options=('A', 'B', 'C', 'D'),
        correct_index=correct_index,
        seconds=seconds,
        **kwargs,
    )


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def emitter():
    return RecordingEmitter()


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def make_manager(clock, emitter, scheduler):
    def _make(questions=None, pins=None, **kwargs):
        specs = list(questions) if questions is not None else [make_question('Q1'), make_question('Q2', 1)]
        pin_factory = None
        if pins is not None:
            pin_iter = iter(pins)
            pin_factory = lambda: next(pin_iter)
        kwargs.setdefault('reaper_interval_sec', 0)
        return RoomManager(
            emitter,
            lambda **selection: specs,
            scheduler=scheduler,
            clock=clock,
            pin_factory=pin_factory,
            **kwargs,
        )
    return _make


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import livequiz.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def seeded_questions(flask_app):
    from livequiz.models import Question, validate_question
    rows = []
    for payload in (
        {'text': 'Red planet?', 'options': ['Venus', 'Mars', 'Jupiter', 'Mercury'], 'correctIndex': 1,
         'seconds': 20, 'difficulty': 'easy', 'category': 'Science'},
        {'text': 'Capital of Australia?', 'options': ['Sydney', 'Melbourne', 'Canberra', 'Perth'],
         'correctIndex': 2, 'seconds': 20, 'difficulty': 'medium', 'category': 'Geography'},
    ):
        question = Question()
        question.apply(validate_question(payload))
        db.session.add(question)
        rows.append(question)
    db.session.commit()
    return [q.to_dict() for q in rows]


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
    yield test_client
    try:
        test_client.disconnect()
    except Exception:
        pass


@pytest.fixture()
def sio_factory(flask_app):
    """Create extra Socket.IO test clients (host plus players)."""
    created = []

    def _make():
        test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        created.append(test_client)
        return test_client

    yield _make
    for test_client in created:
        try:
            if test_client.is_connected():
                test_client.disconnect()
        except Exception:
            pass
