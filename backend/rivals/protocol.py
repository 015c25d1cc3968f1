"""Wire protocol: command decoding and outbound event construction.

Clients send one JSON object per Socket.IO ``message`` event with a
``type`` field; the server answers the same way, one event per target
connection.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from rivals.errors import ProtocolError


class Command:
    CREATE_ROOM = 'CREATE_ROOM'
    GET_ROOM_INFO = 'GET_ROOM_INFO'
    JOIN_ROOM = 'JOIN_ROOM'
    HANDSHAKE_ACCEPT = 'HANDSHAKE_ACCEPT'
    HANDSHAKE_REJECT = 'HANDSHAKE_REJECT'
    PLAYER_READY = 'PLAYER_READY'
    STAKE_COMPLETED = 'STAKE_COMPLETED'
    ANNOUNCE_WINNER = 'ANNOUNCE_WINNER'

    ALL = frozenset([
        CREATE_ROOM, GET_ROOM_INFO, JOIN_ROOM, HANDSHAKE_ACCEPT,
        HANDSHAKE_REJECT, PLAYER_READY, STAKE_COMPLETED, ANNOUNCE_WINNER,
    ])


class Event:
    ROOM_CREATED = 'ROOM_CREATED'
    ROOM_CREATION_FAILED = 'ROOM_CREATION_FAILED'
    ROOM_INFO_SUCCESS = 'ROOM_INFO_SUCCESS'
    ROOM_INFO_FAILED = 'ROOM_INFO_FAILED'
    JOIN_ROOM_SUCCESS = 'JOIN_ROOM_SUCCESS'
    JOIN_ROOM_FAILED = 'JOIN_ROOM_FAILED'
    GUEST_JOINED = 'GUEST_JOINED'
    HANDSHAKE_REQUEST = 'HANDSHAKE_REQUEST'
    HANDSHAKE_ACCEPTED = 'HANDSHAKE_ACCEPTED'
    HANDSHAKE_COMPLETE = 'HANDSHAKE_COMPLETE'
    HANDSHAKE_REJECTED = 'HANDSHAKE_REJECTED'
    TOURNAMENT_START = 'TOURNAMENT_START'
    TOURNAMENT_CREATED = 'TOURNAMENT_CREATED'
    TOURNAMENT_CREATION_FAILED = 'TOURNAMENT_CREATION_FAILED'
    BOTH_PLAYERS_STAKED = 'BOTH_PLAYERS_STAKED'
    WAITING_FOR_OPPONENT_STAKE = 'WAITING_FOR_OPPONENT_STAKE'
    WINNER_ANNOUNCED = 'WINNER_ANNOUNCED'
    WINNER_ANNOUNCEMENT_FAILED = 'WINNER_ANNOUNCEMENT_FAILED'
    HOST_DISCONNECTED = 'HOST_DISCONNECTED'
    GUEST_DISCONNECTED = 'GUEST_DISCONNECTED'
    ERROR = 'ERROR'


# Failure event used when a command is missing its roomId or names an
# unknown room. Commands not listed fall back to Event.ERROR.
FAILURE_EVENTS = {
    Command.GET_ROOM_INFO: Event.ROOM_INFO_FAILED,
    Command.JOIN_ROOM: Event.JOIN_ROOM_FAILED,
    Command.ANNOUNCE_WINNER: Event.WINNER_ANNOUNCEMENT_FAILED,
}

_NEEDS_ROOM = Command.ALL - {Command.CREATE_ROOM}


@dataclass
class InboundCommand:
    type: str
    room_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def get(self, key, default=None):
        return self.data.get(key, default)

    @property
    def payload(self) -> Dict[str, Any]:
        """hostData for CREATE_ROOM, guestData for JOIN_ROOM."""
        key = 'hostData' if self.type == Command.CREATE_ROOM else 'guestData'
        value = self.data.get(key)
        return value if isinstance(value, dict) else {}


@dataclass
class Outbound:
    connection_id: str
    payload: Dict[str, Any]

    @property
    def type(self):
        return self.payload.get('type')


def decode_command(raw: Any) -> InboundCommand:
    """Decode one inbound message into an InboundCommand.

    Accepts the already-parsed dict Socket.IO hands over, or a JSON
    string. A missing roomId is not an error here; handlers reply with
    the command's own failure event for that.
    """
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise ProtocolError(f'Invalid JSON: {exc}') from exc
    if not isinstance(raw, dict):
        raise ProtocolError('Message must be a JSON object')
    msg_type = raw.get('type')
    if not msg_type:
        raise ProtocolError('Message type is required')
    if msg_type not in Command.ALL:
        raise ProtocolError(f'Unknown message type: {msg_type}')
    room_id = raw.get('roomId')
    if room_id is not None:
        room_id = str(room_id).strip().upper() or None
    return InboundCommand(type=msg_type, room_id=room_id, data=raw)


def needs_room(command: InboundCommand) -> bool:
    return command.type in _NEEDS_ROOM


def event(event_type: str, room_id: Optional[str] = None, **fields) -> Dict[str, Any]:
    payload = {'type': event_type}
    if room_id is not None:
        payload['roomId'] = room_id
    payload.update(fields)
    return payload


def send(conn_id: Optional[str], event_type: str, room_id: Optional[str] = None, **fields) -> List[Outbound]:
    """One-element outbound batch, or empty when there is no target."""
    if conn_id is None:
        return []
    return [Outbound(conn_id, event(event_type, room_id, **fields))]


def broadcast(conn_ids, event_type: str, room_id: Optional[str] = None, **fields) -> List[Outbound]:
    """Same event to each connection id; None entries are skipped."""
    body = event(event_type, room_id, **fields)
    return [Outbound(c, dict(body)) for c in conn_ids if c is not None]
