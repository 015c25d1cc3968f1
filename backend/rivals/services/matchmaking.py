import logging
from typing import List, Optional, Tuple

from rivals.errors import RoomCodeExhausted
from rivals.models import JoinError, Room, RoomStatus
from rivals.protocol import Event, InboundCommand, Outbound, broadcast, send
from rivals.registry import ConnectionRegistry
from rivals.store import RoomStore

log = logging.getLogger(__name__)


def join_error_message(error: JoinError, room: Optional[Room]) -> str:
    if error == JoinError.NOT_FOUND:
        return 'Room not found'
    if error == JoinError.FULL:
        return 'Room is full'
    if error == JoinError.STAKE_MISMATCH:
        return f'Stake amount must be ${room.required_stake}'
    return (
        f'This room requires {room.bet_type} betting. '
        f'Your bet will be automatically set to {room.bet_type}.'
    )


class MatchmakingHandler:
    """Room creation, lookup, join and the host's handshake decision.

    Each method returns the events to deliver; nothing here touches the
    transport.
    """

    def __init__(self, store: RoomStore, registry: ConnectionRegistry):
        self.store = store
        self.registry = registry

    def _current_room(self, conn_id: str) -> Optional[str]:
        """Code of the live room this connection already hosts or joined."""
        conn = self.registry.lookup(conn_id)
        if conn is None or not conn.room_code:
            return None
        return conn.room_code if self.store.get_room(conn.room_code) is not None else None

    def create_room(self, conn_id: str, cmd: InboundCommand) -> List[Outbound]:
        current = self._current_room(conn_id)
        if current:
            log.info(f"[room-create-rejected] conn={conn_id} reason=already_in_room room={current}")
            return send(conn_id, Event.ROOM_CREATION_FAILED, error=f"Already in room {current}")
        try:
            room = self.store.create_room(conn_id, cmd.payload)
        except RoomCodeExhausted as exc:
            log.error(f"[room-create-failed] conn={conn_id} error={exc}")
            return send(conn_id, Event.ROOM_CREATION_FAILED, error='Room ID collision, please try again')
        self.registry.attach(conn_id, room.code, is_host=True)
        log.info(
            f"[room-create] room={room.code} conn={conn_id} stake={room.required_stake} "
            f"bet={room.bet_type} active_rooms={len(self.store)}"
        )
        return send(conn_id, Event.ROOM_CREATED, room.code, hostData=room.host_payload)

    def room_info(self, conn_id: str, room: Room) -> List[Outbound]:
        if room.has_guest() and room.tournament_id is None:
            log.info(f"[room-info] room={room.code} conn={conn_id} full")
            return send(conn_id, Event.ROOM_INFO_FAILED, room.code, error='Room is full')
        # Full rooms with a tournament still answer so a participant can resync
        info = room.public_info()
        info.pop('roomId')
        return send(conn_id, Event.ROOM_INFO_SUCCESS, room.code, **info)

    def join_room(self, conn_id: str, room: Room, cmd: InboundCommand) -> List[Outbound]:
        if self.registry.lookup(conn_id) is None:
            log.info(f"[join-ignored] room={room.code} conn={conn_id} reason=connection_gone")
            return []
        if conn_id == room.host_conn:
            log.info(f"[join-rejected] room={room.code} conn={conn_id} reason=own_room")
            return send(conn_id, Event.JOIN_ROOM_FAILED, room.code, error='You cannot join your own room')
        current = self._current_room(conn_id)
        if current:
            log.info(f"[join-rejected] room={room.code} conn={conn_id} reason=already_in_room current={current}")
            return send(conn_id, Event.JOIN_ROOM_FAILED, room.code, error=f"Already in room {current}")
        joined, error = self.store.join_room(room.code, conn_id, cmd.payload)
        if error:
            log.info(
                f"[join-rejected] room={room.code} conn={conn_id} reason={error.value} "
                f"stake={cmd.payload.get('stake')} bet={cmd.payload.get('bet')}"
            )
            return send(
                conn_id, Event.JOIN_ROOM_FAILED, room.code,
                error=join_error_message(error, room),
                requiredStake=room.required_stake,
                betType=room.bet_type,
            )
        joined.advance(RoomStatus.HANDSHAKING)
        self.registry.attach(conn_id, joined.code, is_host=False)
        log.info(f"[join] room={joined.code} guest={conn_id} status={joined.status.value}")
        out = send(
            conn_id, Event.JOIN_ROOM_SUCCESS, joined.code,
            hostData=joined.host_payload,
            betType=joined.bet_type,
            requiredStake=joined.required_stake,
        )
        out += send(joined.host_conn, Event.GUEST_JOINED, joined.code, guestData=joined.guest_payload)
        out += send(joined.host_conn, Event.HANDSHAKE_REQUEST, joined.code, guestData=joined.guest_payload)
        return out

    def handshake_accept(self, conn_id: str, room: Room) -> Tuple[List[Outbound], Optional[Room]]:
        """Returns the handshake events and, when a tournament should be
        created next, the room to create it for."""
        if conn_id != room.host_conn:
            log.warning(f"[handshake-accept-ignored] room={room.code} conn={conn_id} reason=not_host")
            return [], None
        if room.status == RoomStatus.ACCEPTED and room.tournament_id is None:
            # Retry after a failed creation; the handshake itself stands
            log.info(f"[handshake-accept] room={room.code} retrying tournament creation")
            return [], room
        if room.status != RoomStatus.HANDSHAKING:
            log.info(f"[handshake-accept-ignored] room={room.code} status={room.status.value}")
            return [], None
        room.advance(RoomStatus.ACCEPTED)
        log.info(f"[handshake-accept] room={room.code} host={conn_id} guest={room.guest_conn}")
        out = send(room.guest_conn, Event.HANDSHAKE_ACCEPTED, room.code, hostData=room.host_payload)
        out += send(conn_id, Event.HANDSHAKE_COMPLETE, room.code, guestData=room.guest_payload)
        return out, room

    def handshake_reject(self, conn_id: str, room: Room, cmd: InboundCommand) -> List[Outbound]:
        if conn_id != room.host_conn:
            log.warning(f"[handshake-reject-ignored] room={room.code} conn={conn_id} reason=not_host")
            return []
        if room.status != RoomStatus.HANDSHAKING:
            log.info(f"[handshake-reject-ignored] room={room.code} status={room.status.value}")
            return []
        guest = room.detach_guest()
        self.registry.detach(guest, room.code)
        room.advance(RoomStatus.WAITING)
        log.info(f"[handshake-reject] room={room.code} guest={guest} status={room.status.value}")
        return send(
            guest, Event.HANDSHAKE_REJECTED, room.code,
            reason=cmd.get('reason') or 'Host rejected the connection',
        )

    def player_ready(self, conn_id: str, room: Room) -> List[Outbound]:
        role = room.role_of(conn_id)
        if role is None:
            log.warning(f"[player-ready-ignored] room={room.code} conn={conn_id} reason=not_participant")
            return []
        if not room.reached(RoomStatus.ACCEPTED):
            log.info(f"[player-ready-ignored] room={room.code} role={role} status={room.status.value}")
            return []
        if role == 'host':
            room.host_ready = True
        else:
            room.guest_ready = True
        log.info(f"[player-ready] room={room.code} role={role}")
        if not (room.host_ready and room.guest_ready):
            return []
        room.advance(RoomStatus.TOURNAMENT)
        log.info(f"[tournament-start] room={room.code} status={room.status.value}")
        return broadcast(
            room.participants(), Event.TOURNAMENT_START, room.code,
            hostData=room.host_payload, guestData=room.guest_payload,
        )
