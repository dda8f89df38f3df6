import itertools
import logging
import random
import secrets
import string
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from .errors import AuthorizationError, NotFoundError, StateConflictError, ValidationError
from .registry import HOST, PLAYER, ConnectionContext, ConnectionRegistry
from .room import ENDED, LOBBY, QUESTION, RESULTS, AnswerOutcome, Player, QuestionSpec, Room
from .scheduler import InertScheduler, ScheduledTask
from .scoring import MAX_POINTS, MIN_POINTS

PIN_ALPHABET = string.ascii_uppercase + string.digits


def normalize_pin(pin) -> str:
    if not isinstance(pin, str) or not pin.strip():
        raise ValidationError('PIN is required')
    return pin.strip().upper()


class RoomManager:
    """Owns all live rooms and routes connection actions to them.

    Every operation on a room runs under that room's lock, including timer
    callbacks, and events are emitted while the lock is held so each
    connection sees a room's events in the order the room changed. The
    manager lock only guards the PIN table and is never held while waiting
    for a room lock.

    ``emitter`` sends to one connection with ``emit(event, payload, to)`` and
    fans out to a room with ``emit_room(event, payload, pin)``; the manager
    keeps its room membership in step with the registry through
    ``enter_room``, ``leave_room`` and ``close_room``. ``question_source`` is
    called with the game's selection options and returns QuestionSpecs.
    """

    def __init__(self, emitter, question_source: Callable[..., List[QuestionSpec]],
                 scheduler=None, clock: Callable[[], float] = time.time, logger=None,
                 registry: Optional[ConnectionRegistry] = None, pin_factory: Optional[Callable[[], str]] = None,
                 pin_length: int = 6, max_name_length: int = 24,
                 max_points: int = MAX_POINTS, min_points: int = MIN_POINTS,
                 host_grace_sec: float = 10, room_idle_timeout_sec: float = 600,
                 ended_room_ttl_sec: float = 120, reaper_interval_sec: float = 30):
        self.emitter = emitter
        self.question_source = question_source
        self.scheduler = scheduler or InertScheduler()
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self.registry = registry or ConnectionRegistry()
        self.pin_length = pin_length
        self.pin_factory = pin_factory or self._random_pin
        self.max_name_length = max_name_length
        self.max_points = max_points
        self.min_points = min_points
        self.host_grace_sec = host_grace_sec
        self.room_idle_timeout_sec = room_idle_timeout_sec
        self.ended_room_ttl_sec = ended_room_ttl_sec
        self.reaper_interval_sec = reaper_interval_sec

        self.rooms: Dict[str, Room] = {}
        self._lock = threading.Lock()
        self._deadline_tasks: Dict[str, ScheduledTask] = {}
        # pin -> (epoch, task) while the host is away
        self._host_waits: Dict[str, Tuple[int, ScheduledTask]] = {}
        self._host_epochs = itertools.count(1)
        self._reaper_started = False

    @classmethod
    def from_config(cls, config, emitter, question_source, scheduler=None, logger=None) -> 'RoomManager':
        return cls(
            emitter,
            question_source,
            scheduler=scheduler,
            logger=logger,
            pin_length=int(config.get('PIN_LENGTH', 6)),
            max_name_length=int(config.get('MAX_NAME_LENGTH', 24)),
            max_points=int(config.get('MAX_POINTS', MAX_POINTS)),
            min_points=int(config.get('MIN_POINTS', MIN_POINTS)),
            host_grace_sec=float(config.get('HOST_GRACE_SEC', 10)),
            room_idle_timeout_sec=float(config.get('ROOM_IDLE_TIMEOUT_SEC', 600)),
            ended_room_ttl_sec=float(config.get('ENDED_ROOM_TTL_SEC', 120)),
            reaper_interval_sec=float(config.get('REAPER_INTERVAL_SEC', 30)),
        )

    # ---- Lookup ----

    def _random_pin(self) -> str:
        return ''.join(random.choices(PIN_ALPHABET, k=self.pin_length))

    def _generate_pin(self) -> str:
        # Caller holds self._lock
        while True:
            pin = normalize_pin(self.pin_factory())
            if pin not in self.rooms:
                return pin
            self.logger.info(f"[pin-collision] pin={pin}")

    def get_room(self, pin) -> Room:
        pin = normalize_pin(pin)
        room = self.rooms.get(pin)
        if room is None:
            raise NotFoundError(f'No game found with PIN {pin}')
        return room

    def room_state(self, pin) -> dict:
        room = self.get_room(pin)
        with room.lock:
            return room.snapshot()

    def _check_open(self, room: Room) -> None:
        # The room may have been torn down while we waited for its lock
        if room.closed:
            raise NotFoundError(f'No game found with PIN {room.pin}')

    def _require_role(self, room: Room, sid: str, role: str) -> ConnectionContext:
        ctx = self.registry.get(sid)
        if ctx is None or ctx.pin != room.pin or ctx.role != role:
            if role == HOST:
                raise AuthorizationError('Only the host can do that')
            raise AuthorizationError('Only players in this game can answer')
        return ctx

    # ---- Outbound ----

    def _emit(self, event: str, payload: dict, sid: str) -> None:
        self.emitter.emit(event, payload, to=sid)

    def _broadcast(self, room: Room, event: str, payload: dict) -> None:
        self.emitter.emit_room(event, payload, room.pin)

    def _attach(self, sid: str, room: Room, role: str, player_id: Optional[str] = None) -> None:
        previous = self.registry.register(sid, room.pin, role, player_id)
        if previous is not None and previous.pin != room.pin:
            self.emitter.leave_room(sid, previous.pin)
        self.emitter.enter_room(sid, room.pin)

    def _unregister(self, sid: str) -> Optional[ConnectionContext]:
        ctx = self.registry.unregister(sid)
        if ctx is not None:
            self.emitter.leave_room(sid, ctx.pin)
        return ctx

    def _broadcast_room_update(self, room: Room) -> None:
        self._broadcast(room, 'roomUpdate', room.snapshot())

    # ---- Host actions ----

    def create_game(self, sid: str, selection: Optional[dict] = None) -> Room:
        questions = list(self.question_source(**(selection or {})))
        if not questions:
            raise ValidationError('No questions available for this game')
        self._detach(sid)
        now = self.clock()
        with self._lock:
            pin = self._generate_pin()
            room = Room(pin, questions, now, max_name_length=self.max_name_length,
                        max_points=self.max_points, min_points=self.min_points)
            self.rooms[pin] = room
        with room.lock:
            self._attach(sid, room, HOST)
            self.logger.info(f"[room-created] pin={pin} questions={room.question_count} host={sid}")
            self._emit('gameCreated', {
                'pin': pin,
                'hostToken': room.host_token,
                'questionCount': room.question_count,
            }, sid)
            self._broadcast_room_update(room)
        self._ensure_reaper()
        return room

    def start_game(self, sid: str, pin) -> None:
        room = self.get_room(pin)
        with room.lock:
            self._check_open(room)
            self._require_role(room, sid, HOST)
            room.start(self.clock())
            self._question_opened(room)

    def next_question(self, sid: str, pin) -> None:
        room = self.get_room(pin)
        with room.lock:
            self._check_open(room)
            self._require_role(room, sid, HOST)
            if room.advance(self.clock()) is None:
                self._game_over(room)
            else:
                self._question_opened(room)

    def end_game(self, sid: str, pin) -> None:
        room = self.get_room(pin)
        with room.lock:
            self._check_open(room)
            self._require_role(room, sid, HOST)
            room.end(self.clock())
            self._game_over(room)

    def resume_host(self, sid: str, pin, host_token) -> Room:
        room = self.get_room(pin)
        if not isinstance(host_token, str) or not secrets.compare_digest(host_token, room.host_token):
            raise AuthorizationError('Invalid host token')
        current = self.registry.get(sid)
        if current is None or current.pin != room.pin or current.role != HOST:
            self._detach(sid)
        with room.lock:
            self._check_open(room)
            previous_host = self.registry.host_for(room.pin)
            if previous_host is not None and previous_host != sid:
                self._unregister(previous_host)
            self._attach(sid, room, HOST)
            wait = self._host_waits.pop(room.pin, None)
            if wait is not None:
                wait[1].cancel()
            self.logger.info(f"[host-resumed] pin={room.pin} host={sid} replaced={previous_host}")
            self._emit('hostResumed', {
                'pin': room.pin,
                'hostToken': room.host_token,
                'questionCount': room.question_count,
            }, sid)
            self._broadcast_room_update(room)
            if room.phase == QUESTION:
                self._emit('newQuestion', room.question_payload(), sid)
            elif room.phase in (RESULTS, ENDED):
                self._emit('leaderboard', room.leaderboard_payload(), sid)
        return room

    # ---- Player actions ----

    def join_game(self, sid: str, pin, player_name) -> Player:
        room = self.get_room(pin)
        current = self.registry.get(sid)
        if current is not None and current.pin == room.pin:
            if current.role == HOST:
                raise StateConflictError('The host cannot join as a player')
            raise StateConflictError('Already joined this game')
        with room.lock:
            self._check_open(room)
            if room.phase == ENDED:
                raise NotFoundError(f'The game {room.pin} has ended')
            player = room.add_player(player_name, self.clock())
        # Leave any previous room only once the name is accepted
        self._detach(sid)
        with room.lock:
            if room.closed:
                raise NotFoundError(f'No game found with PIN {room.pin}')
            if room.phase != LOBBY:
                # The game started while this connection was leaving its previous room
                room.remove_player(player.id, self.clock())
                raise StateConflictError('This game has already started')
            self._attach(sid, room, PLAYER, player.id)
            self.logger.info(f"[player-joined] pin={room.pin} player={player.id} name={player.name!r}")
            self._emit('joined', {'pin': room.pin, 'playerId': player.id, 'name': player.name}, sid)
            self._broadcast_room_update(room)
        return player

    def submit_answer(self, sid: str, pin, answer_index, client_time_left=None) -> AnswerOutcome:
        room = self.get_room(pin)
        with room.lock:
            self._check_open(room)
            ctx = self._require_role(room, sid, PLAYER)
            now = self.clock()
            outcome = room.submit_answer(ctx.player_id, answer_index, now)
            # client_time_left is diagnostic only, scoring uses the room's deadline
            self.logger.info(
                f"[answer] pin={room.pin} question={room.question_index} player={ctx.player_id} "
                f"correct={outcome.answer.correct} points={outcome.answer.points} late={outcome.answer.late} "
                f"client_time_left={client_time_left!r}"
            )
            self._emit('answerResult', outcome.to_payload(room.pin), sid)
            if room.deadline_passed(now):
                self._close_question(room, 'deadline')
            elif room.all_answered():
                self._close_question(room, 'all_answered')
            else:
                self._broadcast_room_update(room)
        return outcome

    # ---- Leaving ----

    def leave_game(self, sid: str, pin=None) -> Optional[ConnectionContext]:
        ctx = self.registry.get(sid)
        if ctx is None or (pin is not None and ctx.pin != normalize_pin(pin)):
            raise NotFoundError('Not in that game')
        self._detach(sid)
        self._emit('left', {'pin': ctx.pin}, sid)
        return ctx

    def disconnect(self, sid: str) -> None:
        ctx = self._unregister(sid)
        if ctx is not None:
            self._leave(ctx, explicit=False)

    def _detach(self, sid: str) -> None:
        ctx = self._unregister(sid)
        if ctx is not None:
            self._leave(ctx, explicit=True)

    def _leave(self, ctx: ConnectionContext, explicit: bool) -> None:
        room = self.rooms.get(ctx.pin)
        if room is None:
            return
        with room.lock:
            if room.closed:
                return
            now = self.clock()
            if ctx.role == PLAYER:
                if room.phase == LOBBY:
                    # Nothing to keep yet; free the name for a rejoin
                    player = room.remove_player(ctx.player_id, now)
                else:
                    player = room.mark_disconnected(ctx.player_id, now)
                if player is None:
                    return
                self.logger.info(f"[player-left] pin={room.pin} player={player.id} explicit={explicit}")
                # A departed player no longer holds up the question
                if room.phase == QUESTION and room.all_answered():
                    self._close_question(room, 'all_answered')
                else:
                    self._broadcast_room_update(room)
                return

            if self.registry.host_for(room.pin) is not None:
                # Another connection already took over as host
                return
            if explicit or self.host_grace_sec <= 0:
                self._teardown(room, 'host_left')
                return
            epoch = next(self._host_epochs)
            task = self.scheduler.schedule(self.host_grace_sec, self.expire_host, room.pin, epoch,
                                           name=f'host-grace:{room.pin}')
            self._host_waits[room.pin] = (epoch, task)
            self.logger.info(f"[host-away] pin={room.pin} grace={self.host_grace_sec}s")

    # ---- Transitions ----

    def _question_opened(self, room: Room) -> None:
        seq = room.question_seq
        delay = max(0.0, room.question_deadline - self.clock())
        previous = self._deadline_tasks.pop(room.pin, None)
        if previous is not None:
            previous.cancel()
        self._deadline_tasks[room.pin] = self.scheduler.schedule(
            delay, self.expire_question, room.pin, seq, name=f'deadline:{room.pin}:{seq}')
        self.logger.info(
            f"[timer-set] pin={room.pin} question={room.question_index} seq={seq} "
            f"duration={room.active_question.seconds}s deadline={room.question_deadline}"
        )
        self._broadcast_room_update(room)
        self._broadcast(room, 'newQuestion', room.question_payload())

    def _close_question(self, room: Room, reason: str) -> bool:
        if not room.close_question(self.clock()):
            return False
        task = self._deadline_tasks.pop(room.pin, None)
        if task is not None:
            task.cancel()
        self.logger.info(f"[question-closed] pin={room.pin} question={room.question_index} reason={reason}")
        self._broadcast_room_update(room)
        self._broadcast(room, 'leaderboard', room.leaderboard_payload())
        return True

    def _game_over(self, room: Room) -> None:
        self.logger.info(f"[game-ended] pin={room.pin} questions_played={room.question_index + 1}")
        self._broadcast_room_update(room)
        self._broadcast(room, 'leaderboard', room.leaderboard_payload())

    def _teardown(self, room: Room, reason: str) -> None:
        # Caller holds room.lock
        room.closed = True
        task = self._deadline_tasks.pop(room.pin, None)
        if task is not None:
            task.cancel()
        wait = self._host_waits.pop(room.pin, None)
        if wait is not None:
            wait[1].cancel()
        self._broadcast(room, 'gameEnded', {'pin': room.pin, 'reason': reason})
        self.registry.drop_room(room.pin)
        self.emitter.close_room(room.pin)
        with self._lock:
            if self.rooms.get(room.pin) is room:
                del self.rooms[room.pin]
        self.logger.info(f"[room-closed] pin={room.pin} reason={reason}")

    # ---- Timer callbacks ----

    def expire_question(self, pin: str, seq: int) -> None:
        room = self.rooms.get(pin)
        if room is None:
            self.logger.info(f"[timer-abort] pin={pin} seq={seq} room gone")
            return
        with room.lock:
            if room.closed or room.phase != QUESTION or room.question_seq != seq:
                self.logger.info(
                    f"[timer-abort] pin={pin} seq={seq} actual_phase={room.phase} actual_seq={room.question_seq}"
                )
                return
            self.logger.info(f"[timer-fire] pin={pin} seq={seq}")
            self._close_question(room, 'deadline')

    def expire_host(self, pin: str, epoch: int) -> None:
        room = self.rooms.get(pin)
        if room is None:
            return
        with room.lock:
            wait = self._host_waits.get(pin)
            if room.closed or wait is None or wait[0] != epoch:
                return
            self._host_waits.pop(pin, None)
            if self.registry.host_for(pin) is not None:
                return
            self._teardown(room, 'host_left')

    def _ensure_reaper(self) -> None:
        if self.reaper_interval_sec <= 0:
            return
        with self._lock:
            if self._reaper_started:
                return
            self._reaper_started = True
        self.scheduler.schedule(self.reaper_interval_sec, self._reap_tick, name='reaper')

    def _reap_tick(self) -> None:
        try:
            self.reap()
        finally:
            self.scheduler.schedule(self.reaper_interval_sec, self._reap_tick, name='reaper')

    def reap(self) -> List[str]:
        """Tear down ended rooms past retention and idle rooms without players."""
        now = self.clock()
        with self._lock:
            rooms = list(self.rooms.values())
        reaped = []
        for room in rooms:
            with room.lock:
                if room.closed:
                    continue
                if room.phase == ENDED:
                    if now - room.ended_at >= self.ended_room_ttl_sec:
                        self._teardown(room, 'expired')
                        reaped.append(room.pin)
                elif not room.active_players() and now - room.last_activity >= self.room_idle_timeout_sec:
                    self._teardown(room, 'idle')
                    reaped.append(room.pin)
        return reaped
