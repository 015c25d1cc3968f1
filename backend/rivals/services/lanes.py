import threading
from typing import Dict


class _Lane:
    __slots__ = ('cond', 'next_ticket', 'serving', 'users')

    def __init__(self):
        self.cond = threading.Condition()
        self.next_ticket = 0
        self.serving = 0
        self.users = 0


class Ticket:
    """A place in one room's lane.

    Taken when the command arrives; entering blocks until every earlier
    ticket for the room has been released. Each ticket must be entered
    and exited exactly once or the lane stalls.
    """
    __slots__ = ('_lanes', 'room_code', '_lane', 'number')

    def __init__(self, lanes: 'RoomLanes', room_code: str, lane: _Lane, number: int):
        self._lanes = lanes
        self.room_code = room_code
        self._lane = lane
        self.number = number

    def __enter__(self):
        lane = self._lane
        with lane.cond:
            while lane.serving != self.number:
                lane.cond.wait()
        return self

    def __exit__(self, exc_type, exc, tb):
        self._lanes._release(self.room_code, self._lane)
        return False


class RoomLanes:
    """One FIFO lane per room code.

    Work for a room runs while holding its lane, in the order tickets
    were taken. Lanes for different rooms are independent, so a slow
    contract call in one room never holds up another. Idle lanes are
    dropped.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._lanes: Dict[str, _Lane] = {}

    def reserve(self, room_code: str) -> Ticket:
        with self._guard:
            lane = self._lanes.get(room_code)
            if lane is None:
                lane = self._lanes[room_code] = _Lane()
            lane.users += 1
            number = lane.next_ticket
            lane.next_ticket += 1
        return Ticket(self, room_code, lane, number)

    def serialized(self, room_code: str) -> Ticket:
        """Reserve and use in one step: ``with lanes.serialized(code): ...``"""
        return self.reserve(room_code)

    def _release(self, room_code: str, lane: _Lane) -> None:
        with lane.cond:
            lane.serving += 1
            lane.cond.notify_all()
        with self._guard:
            lane.users -= 1
            if lane.users == 0 and self._lanes.get(room_code) is lane:
                del self._lanes[room_code]

    def active(self) -> int:
        """Number of rooms with work queued or running."""
        return len(self._lanes)
