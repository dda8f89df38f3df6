from flask_socketio import emit
from flask import current_app, request
from livequiz import socketio
from livequiz.models import load_questions
from livequiz.services.quiz import QuizError, RoomManager, ValidationError
from livequiz.services.quiz.scheduler import InertScheduler, SocketIOScheduler
import functools


def room_name(pin: str) -> str:
    return f"game:{pin}"


class SocketIOEmitter:
    """Delivers room events through Socket.IO rooms named ``game:<PIN>``.

    Membership goes through the server object rather than ``join_room`` so it
    also works for connections other than the one being handled, and from
    timer callbacks outside a request.
    """

    def __init__(self, namespace: str = '/'):
        self.namespace = namespace

    def emit(self, event: str, payload: dict, to: str) -> None:
        socketio.emit(event, payload, to=to, namespace=self.namespace)

    def emit_room(self, event: str, payload: dict, pin: str) -> None:
        socketio.emit(event, payload, to=room_name(pin), namespace=self.namespace)

    def enter_room(self, sid: str, pin: str) -> None:
        socketio.server.enter_room(sid, room_name(pin), namespace=self.namespace)

    def leave_room(self, sid: str, pin: str) -> None:
        socketio.server.leave_room(sid, room_name(pin), namespace=self.namespace)

    def close_room(self, pin: str) -> None:
        socketio.close_room(room_name(pin), namespace=self.namespace)


def build_room_manager(app) -> RoomManager:
    # Timers are inert in TESTING so tests drive phase changes themselves
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        scheduler = InertScheduler()
    else:
        scheduler = SocketIOScheduler(socketio, app.logger)
    emitter = SocketIOEmitter(app.config.get('SOCKETIO_NAMESPACE', '/'))
    return RoomManager.from_config(app.config, emitter, load_questions, scheduler=scheduler, logger=app.logger)


def _manager() -> RoomManager:
    return current_app.extensions['room_manager']


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _reports_errors_as(error_event: str):
    """Turn room errors into ``error_event`` for the sending connection only."""
    def decorator(handler):
        @functools.wraps(handler)
        def wrapper(data=None):
            try:
                handler(data if isinstance(data, dict) else {})
            except QuizError as exc:
                current_app.logger.info(
                    f"[{error_event}] sid={_get_sid()} handler={handler.__name__} code={exc.code} message={exc.message}"
                )
                emit(error_event, exc.to_payload())
            except Exception:
                current_app.logger.exception(f"[handler-error] sid={_get_sid()} handler={handler.__name__}")
                emit(error_event, {'message': 'Internal server error', 'code': 'internal'})
        return wrapper
    return decorator


def _game_selection(data) -> dict:
    """Parse the optional question selection sent with createGame."""
    selection = {}
    question_ids = data.get('questionIds')
    if question_ids is not None:
        if not isinstance(question_ids, list) or not all(
                isinstance(i, int) and not isinstance(i, bool) for i in question_ids):
            raise ValidationError('questionIds must be a list of integers')
        if len(set(question_ids)) != len(question_ids):
            raise ValidationError('questionIds must not repeat')
        selection['question_ids'] = question_ids
    for key in ('category', 'difficulty'):
        value = data.get(key)
        if value is None or value == '':
            continue
        if not isinstance(value, str):
            raise ValidationError(f'{key} must be a string')
        selection[key] = value.strip()
    limit = data.get('limit')
    if limit is not None:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError('limit must be a positive integer')
        selection['limit'] = limit
    return selection


def handle_connect(auth=None):
    emit('connected', {'sid': _get_sid()})


def handle_disconnect(*args):
    # Newer Flask-SocketIO passes a reason argument; it is not needed here
    sid = _get_sid()
    try:
        _manager().disconnect(sid)
    except Exception:
        current_app.logger.exception(f"[disconnect-error] sid={sid}")


@_reports_errors_as('hostError')
def handle_create_game(data):
    _manager().create_game(_get_sid(), _game_selection(data))


@_reports_errors_as('joinError')
def handle_join_game(data):
    _manager().join_game(_get_sid(), data.get('pin'), data.get('playerName'))


@_reports_errors_as('hostError')
def handle_start_game(data):
    _manager().start_game(_get_sid(), data.get('pin'))


@_reports_errors_as('hostError')
def handle_next_question(data):
    _manager().next_question(_get_sid(), data.get('pin'))


@_reports_errors_as('hostError')
def handle_end_game(data):
    _manager().end_game(_get_sid(), data.get('pin'))


@_reports_errors_as('hostError')
def handle_resume_host(data):
    _manager().resume_host(_get_sid(), data.get('pin'), data.get('hostToken'))


@_reports_errors_as('answerError')
def handle_submit_answer(data):
    _manager().submit_answer(_get_sid(), data.get('pin'), data.get('answerIndex'), data.get('clientTimeLeft'))


@_reports_errors_as('error')
def handle_leave_game(data):
    _manager().leave_game(_get_sid(), data.get('pin'))


def handle_ping(data=None):
    emit('pong', data or {})


HANDLERS = {
    'connect': handle_connect,
    'disconnect': handle_disconnect,
    'createGame': handle_create_game,
    'joinGame': handle_join_game,
    'startGame': handle_start_game,
    'nextQuestion': handle_next_question,
    'endGame': handle_end_game,
    'resumeHost': handle_resume_host,
    'submitAnswer': handle_submit_answer,
    'leaveGame': handle_leave_game,
    'ping': handle_ping,
}


def register_socketio_handlers(namespace: str = '/') -> None:
    """Register one handler per Socket.IO event on ``namespace``."""
    for event, handler in HANDLERS.items():
        socketio.on_event(event, handler, namespace=namespace)
