import threading
from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class Session:
    sid: str
    room_code: str
    user_name: str
    user_role: str


class SessionRegistry:
    """Live connection id -> the room and participant it is bound to.

    A connection holds at most one binding; binding again replaces it.
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def bind(self, sid: str, room_code: str, user_name: str, user_role: str) -> Optional[Session]:
        """Bind ``sid`` and return the binding it replaced, if any."""
        with self._lock:
            previous = self._sessions.get(sid)
            self._sessions[sid] = Session(sid, room_code, user_name, user_role)
            return previous

    def get(self, sid: str) -> Optional[Session]:
        return self._sessions.get(sid)

    def unbind(self, sid: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.pop(sid, None)

    def in_room(self, room_code: str) -> List[Session]:
        with self._lock:
            return [s for s in self._sessions.values() if s.room_code == room_code]

    def __len__(self):
        return len(self._sessions)

    def __contains__(self, sid):
        return sid in self._sessions
