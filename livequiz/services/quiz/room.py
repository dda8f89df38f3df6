import threading
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import AuthorizationError, StateConflictError, ValidationError
from .scoring import MAX_POINTS, MIN_POINTS, score

LOBBY = 'lobby'
QUESTION = 'question'
RESULTS = 'results'
ENDED = 'ended'

# Allowed phase changes; anything else is a state conflict
TRANSITIONS = {
    LOBBY: (QUESTION,),
    QUESTION: (RESULTS,),
    RESULTS: (QUESTION, ENDED),
    ENDED: (),
}

OPTION_COUNT = 4


@dataclass(frozen=True)
class QuestionSpec:
    """Immutable copy of a bank question taken when a room is created."""

    text: str
    options: Tuple[str, ...]
    correct_index: int
    seconds: int
    difficulty: str = 'medium'
    category: str = ''
    id: Optional[int] = None

    def __post_init__(self):
        if len(self.options) != OPTION_COUNT:
            raise ValueError(f'a question needs exactly {OPTION_COUNT} options')
        if not 0 <= self.correct_index < len(self.options):
            raise ValueError('correct_index out of range')
        if self.seconds <= 0:
            raise ValueError('seconds must be positive')

    def public_dict(self) -> dict:
        # correct_index is deliberately absent
        return {
            'text': self.text,
            'options': list(self.options),
            'seconds': self.seconds,
            'difficulty': self.difficulty,
            'category': self.category,
        }


@dataclass
class Answer:
    option_index: int
    submitted_at: float
    correct: bool
    points: int
    late: bool


@dataclass
class Player:
    id: str
    name: str
    score: int = 0
    round_points: int = 0
    connected: bool = True
    last_answer: Optional[Answer] = None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'score': self.score,
            'connected': self.connected,
            'answered': self.last_answer is not None,
        }


@dataclass
class AnswerOutcome:
    player: Player
    answer: Answer

    def to_payload(self, pin: str) -> dict:
        return {
            'pin': pin,
            'isCorrect': self.answer.correct,
            'points': self.answer.points,
            'score': self.player.score,
            'late': self.answer.late,
        }


class Room:
    """One live quiz event: roster, question cursor and phase.

    The room only validates and mutates its own state. Locking, timers and
    delivering events to connections belong to the room manager, which holds
    ``lock`` around every call.
    """

    def __init__(self, pin: str, questions: Sequence[QuestionSpec], now: float,
                 host_token: Optional[str] = None, max_name_length: int = 24,
                 max_points: int = MAX_POINTS, min_points: int = MIN_POINTS):
        if not questions:
            raise ValueError('a room needs at least one question')
        self.pin = pin
        self.questions: Tuple[QuestionSpec, ...] = tuple(questions)
        self.host_token = host_token or uuid.uuid4().hex
        self.max_name_length = max_name_length
        self.max_points = max_points
        self.min_points = min_points

        self.phase = LOBBY
        self.players: Dict[str, Player] = {}
        self.question_index = -1
        self.question_deadline: Optional[float] = None
        self.active_question: Optional[QuestionSpec] = None
        self.last_closed_question: Optional[QuestionSpec] = None
        # Bumped each time a question opens; deadline timers carry it as a token
        self.question_seq = 0

        self.created_at = now
        self.last_activity = now
        self.ended_at: Optional[float] = None
        # Set once the manager tears the room down
        self.closed = False
        self.lock = threading.RLock()

    @property
    def question_count(self) -> int:
        return len(self.questions)

    @property
    def question_started_at(self) -> Optional[float]:
        if self.active_question is None or self.question_deadline is None:
            return None
        return self.question_deadline - self.active_question.seconds

    def _transition(self, new_phase: str) -> None:
        if new_phase not in TRANSITIONS[self.phase]:
            raise StateConflictError(f'Cannot go from {self.phase} to {new_phase}')
        self.phase = new_phase

    # -------------------- Roster -------------------- #

    def add_player(self, name, now: float) -> Player:
        if self.phase != LOBBY:
            raise StateConflictError('This game has already started')
        if not isinstance(name, str) or not name.strip():
            raise ValidationError('Player name is required')
        clean = name.strip()
        if len(clean) > self.max_name_length:
            raise ValidationError(f'Player name must be at most {self.max_name_length} characters')
        key = clean.casefold()
        if any(p.name.casefold() == key for p in self.players.values()):
            raise ValidationError(f'The name "{clean}" is already taken')

        player_id = uuid.uuid4().hex[:8]
        while player_id in self.players:
            player_id = uuid.uuid4().hex[:8]
        player = Player(id=player_id, name=clean)
        self.players[player_id] = player
        self.last_activity = now
        return player

    def remove_player(self, player_id: str, now: float) -> Optional[Player]:
        """Drop a player who has not played yet, freeing the name."""
        player = self.players.pop(player_id, None)
        if player is not None:
            self.last_activity = now
        return player

    def mark_disconnected(self, player_id: str, now: float) -> Optional[Player]:
        player = self.players.get(player_id)
        if player is None or not player.connected:
            return None
        player.connected = False
        self.last_activity = now
        return player

    def active_players(self) -> List[Player]:
        return [p for p in self.players.values() if p.connected]

    # -------------------- Phase changes -------------------- #

    def start(self, now: float) -> QuestionSpec:
        if self.phase != LOBBY:
            raise StateConflictError('The game has already started')
        if not self.active_players():
            raise StateConflictError('At least one player must join before starting')
        return self._open_question(0, now)

    def advance(self, now: float) -> Optional[QuestionSpec]:
        """Open the next question, or end the game after the last one.

        Returns the opened question, or None when the game ended.
        """
        if self.phase != RESULTS:
            raise StateConflictError(self._not_between_questions())
        next_index = self.question_index + 1
        if next_index >= self.question_count:
            self.end(now)
            return None
        return self._open_question(next_index, now)

    def end(self, now: float) -> None:
        if self.phase != RESULTS:
            raise StateConflictError(self._not_between_questions())
        self._transition(ENDED)
        self.ended_at = now
        self.last_activity = now

    def _not_between_questions(self) -> str:
        if self.phase == QUESTION:
            return 'Wait for the current question to close'
        if self.phase == LOBBY:
            return 'The game has not started yet'
        return 'The game is over'

    def _open_question(self, index: int, now: float) -> QuestionSpec:
        self._transition(QUESTION)
        question = self.questions[index]
        self.question_index = index
        self.active_question = question
        self.question_deadline = now + question.seconds
        self.question_seq += 1
        for player in self.players.values():
            player.last_answer = None
            player.round_points = 0
        self.last_activity = now
        return question

    def close_question(self, now: float) -> bool:
        """Move from question to results.

        Returns False, changing nothing, when the question is already closed,
        so that competing callers close it at most once.
        """
        if self.phase != QUESTION:
            return False
        question = self.active_question
        for player in self.players.values():
            if player.last_answer is None:
                player.round_points = score(False, question.seconds, question.seconds,
                                            self.max_points, self.min_points)
        self._transition(RESULTS)
        self.last_closed_question = question
        self.active_question = None
        self.question_deadline = None
        self.last_activity = now
        return True

    # -------------------- Answers -------------------- #

    def submit_answer(self, player_id: str, answer_index, now: float) -> AnswerOutcome:
        if self.phase != QUESTION:
            raise StateConflictError('No question is open for answers')
        player = self.players.get(player_id)
        if player is None:
            raise AuthorizationError('Not a player in this game')
        question = self.active_question
        if isinstance(answer_index, bool) or not isinstance(answer_index, int):
            raise ValidationError('answerIndex must be an integer')
        if not 0 <= answer_index < len(question.options):
            raise ValidationError('answerIndex is out of range')
        if player.last_answer is not None:
            raise StateConflictError('Answer already submitted for this question')

        late = now > self.question_deadline
        correct = answer_index == question.correct_index
        points = 0
        if not late:
            points = score(correct, now - self.question_started_at, question.seconds,
                           self.max_points, self.min_points)
        answer = Answer(option_index=answer_index, submitted_at=now, correct=correct,
                        points=points, late=late)
        player.last_answer = answer
        player.round_points = points
        player.score += points
        self.last_activity = now
        return AnswerOutcome(player=player, answer=answer)

    def deadline_passed(self, now: float) -> bool:
        return self.phase == QUESTION and now >= self.question_deadline

    def all_answered(self) -> bool:
        """True when every connected player has answered the open question."""
        active = self.active_players()
        return bool(active) and all(p.last_answer is not None for p in active)

    # -------------------- Views -------------------- #

    def leaderboard(self) -> List[Player]:
        # sorted() is stable, so equal scores keep join order
        return sorted(self.players.values(), key=lambda p: -p.score)

    def leaderboard_payload(self) -> dict:
        closed = self.last_closed_question
        return {
            'pin': self.pin,
            'phase': self.phase,
            'final': self.phase == ENDED,
            'questionIndex': self.question_index,
            'correctIndex': closed.correct_index if closed else None,
            'players': [
                {
                    'id': p.id,
                    'name': p.name,
                    'score': p.score,
                    'roundPoints': p.round_points,
                    'connected': p.connected,
                }
                for p in self.leaderboard()
            ],
        }

    def question_payload(self) -> dict:
        payload = self.active_question.public_dict()
        payload.update({
            'pin': self.pin,
            'index': self.question_index,
            'total': self.question_count,
            'deadline': self.question_deadline,
        })
        return payload

    def snapshot(self) -> dict:
        return {
            'pin': self.pin,
            'state': self.phase,
            'players': [p.to_dict() for p in self.players.values()],
            'questionIndex': self.question_index,
            'questionCount': self.question_count,
            'deadline': self.question_deadline,
        }
