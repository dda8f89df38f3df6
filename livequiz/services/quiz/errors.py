"""Recoverable errors raised by room operations.

Each error is reported to the connection that caused it and never affects
other connections or rooms. ``code`` is the value sent on the wire.
"""


class QuizError(Exception):
    code = 'error'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {'message': self.message, 'code': self.code}


class ValidationError(QuizError):
    code = 'validation'


class AuthorizationError(QuizError):
    code = 'authorization'


class StateConflictError(QuizError):
    code = 'state_conflict'


class NotFoundError(QuizError):
    code = 'not_found'
