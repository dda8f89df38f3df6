"""Live quiz domain services: rooms, scoring, connections and timers.

Nothing in this package knows about Flask or Socket.IO; the socket handlers
and REST routes pass in an emitter, a scheduler and a question source.
"""

from .errors import AuthorizationError, NotFoundError, QuizError, StateConflictError, ValidationError
from .manager import RoomManager, normalize_pin
from .registry import HOST, PLAYER, ConnectionContext, ConnectionRegistry
from .room import ENDED, LOBBY, QUESTION, RESULTS, QuestionSpec, Room
from .scoring import score

__all__ = [
    'AuthorizationError',
    'NotFoundError',
    'QuizError',
    'StateConflictError',
    'ValidationError',
    'RoomManager',
    'normalize_pin',
    'HOST',
    'PLAYER',
    'ConnectionContext',
    'ConnectionRegistry',
    'ENDED',
    'LOBBY',
    'QUESTION',
    'RESULTS',
    'QuestionSpec',
    'Room',
    'score',
]
