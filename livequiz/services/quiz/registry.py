import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

HOST = 'host'
PLAYER = 'player'


@dataclass(frozen=True)
class ConnectionContext:
    sid: str
    pin: str
    role: str
    player_id: Optional[str] = None


class ConnectionRegistry:
    """Index of live connections by connection id and by room PIN.

    A connection belongs to at most one room. Lookups by PIN touch only that
    room's connections.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._by_sid: Dict[str, ConnectionContext] = {}
        # pin -> insertion-ordered set of sids
        self._by_pin: Dict[str, Dict[str, None]] = {}

    def register(self, sid: str, pin: str, role: str, player_id: Optional[str] = None) -> Optional[ConnectionContext]:
        """Attach ``sid`` to a room, returning the context it replaced (if any)."""
        if role not in (HOST, PLAYER):
            raise ValueError(f'unknown role {role!r}')
        ctx = ConnectionContext(sid=sid, pin=pin, role=role, player_id=player_id)
        with self._lock:
            previous = self._discard(sid)
            self._by_sid[sid] = ctx
            self._by_pin.setdefault(pin, {})[sid] = None
        return previous

    def unregister(self, sid: str) -> Optional[ConnectionContext]:
        with self._lock:
            return self._discard(sid)

    def _discard(self, sid: str) -> Optional[ConnectionContext]:
        ctx = self._by_sid.pop(sid, None)
        if ctx is not None:
            members = self._by_pin.get(ctx.pin)
            if members is not None:
                members.pop(sid, None)
                if not members:
                    del self._by_pin[ctx.pin]
        return ctx

    def get(self, sid: str) -> Optional[ConnectionContext]:
        return self._by_sid.get(sid)

    def contexts_for(self, pin: str) -> List[ConnectionContext]:
        with self._lock:
            return [self._by_sid[sid] for sid in self._by_pin.get(pin, ())]

    def host_for(self, pin: str) -> Optional[str]:
        for ctx in self.contexts_for(pin):
            if ctx.role == HOST:
                return ctx.sid
        return None

    def drop_room(self, pin: str) -> List[ConnectionContext]:
        """Detach every connection of a room."""
        with self._lock:
            sids = list(self._by_pin.pop(pin, ()))
            return [self._by_sid.pop(sid) for sid in sids if sid in self._by_sid]

    def __len__(self) -> int:
        return len(self._by_sid)
