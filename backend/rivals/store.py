import logging
import threading
from typing import Any, Callable, Dict, Optional, Tuple, Union

from rivals.errors import RoomCodeExhausted
from rivals.models import DEFAULT_BET, JoinError, Room, RoomStatus, generate_room_code

log = logging.getLogger(__name__)


class RoomStore:
    """In-memory table of rooms keyed by room code.

    Rooms are ephemeral: nothing survives a restart. The store creates,
    looks up, joins and deletes rooms; every other mutation (status,
    staked flags, tournament id) belongs to the handlers.
    """

    def __init__(self, code_factory: Callable[[], str] = generate_room_code, max_attempts: int = 5):
        self._lock = threading.Lock()
        self._rooms: Dict[str, Room] = {}
        self._code_factory = code_factory
        self._max_attempts = max(1, int(max_attempts))

    def create_room(self, host_conn: str, host_payload: Optional[Dict[str, Any]]) -> Room:
        payload = dict(host_payload or {})
        with self._lock:
            for attempt in range(1, self._max_attempts + 1):
                code = self._code_factory()
                if code in self._rooms:
                    log.warning(f"[room-code-collision] code={code} attempt={attempt}")
                    continue
                room = Room(
                    code=code,
                    host_conn=host_conn,
                    host_payload=payload,
                    required_stake=payload.get('stake') or 0,
                    bet_type=payload.get('bet') or DEFAULT_BET,
                )
                self._rooms[code] = room
                return room
        raise RoomCodeExhausted(self._max_attempts)

    def get_room(self, code: Optional[str]) -> Optional[Room]:
        if not code:
            return None
        return self._rooms.get(str(code).strip().upper())

    def join_room(self, code: str, guest_conn: str, guest_payload: Optional[Dict[str, Any]]) -> Tuple[Optional[Room], Optional[JoinError]]:
        """Attach a guest; on any JoinError the room is left untouched."""
        room = self.get_room(code)
        if not room:
            return None, JoinError.NOT_FOUND
        if room.has_guest() or room.status != RoomStatus.WAITING:
            return room, JoinError.FULL
        payload = dict(guest_payload or {})
        if not _same_value(payload.get('stake') or 0, room.required_stake):
            return room, JoinError.STAKE_MISMATCH
        if payload.get('bet') != room.bet_type:
            return room, JoinError.BET_MISMATCH
        room.guest_conn = guest_conn
        room.guest_payload = payload
        return room, None

    def delete_room(self, code: str) -> Optional[Room]:
        with self._lock:
            return self._rooms.pop(code, None)

    def codes(self):
        return list(self._rooms.keys())

    def __len__(self):
        return len(self._rooms)

    def __contains__(self, code):
        return code in self._rooms


def _same_value(a: Union[int, float, Any], b: Union[int, float, Any]) -> bool:
    # bool is an int subclass; True must not pass for a stake of 1
    if isinstance(a, bool) or isinstance(b, bool):
        return a is b
    if type(a) in (int, float) and type(b) in (int, float):
        return a == b
    return type(a) is type(b) and a == b
