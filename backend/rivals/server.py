import logging
from typing import Any, Callable, Dict, Iterable, Optional

from rivals.errors import ProtocolError
from rivals.models import Connection, Room, RoomStatus
from rivals.protocol import FAILURE_EVENTS, Command, Event, InboundCommand, Outbound, decode_command, send
from rivals.registry import ConnectionRegistry
from rivals.services.escrow import EscrowHandler
from rivals.services.lanes import RoomLanes, Ticket
from rivals.services.matchmaking import MatchmakingHandler
from rivals.services.winner import WinnerHandler
from rivals.settlement import SettlementService
from rivals.store import RoomStore

log = logging.getLogger(__name__)

DeliverFn = Callable[[Connection, Dict[str, Any]], None]
ScheduleFn = Callable[..., Any]
SpawnFn = Callable[..., Any]


def run_inline(fn, *args):
    fn(*args)


class RoomServer:
    """Routes decoded commands to the handlers and delivers their events.

    Every command that names a room runs inside that room's lane, so one
    room sees its commands in arrival order even while a contract call
    is outstanding. ``deliver`` writes one payload to one live
    connection; ``schedule(delay, fn, *args)`` runs ``fn`` later (host
    grace period). ``spawn(fn, *args)`` runs lane work off the
    transport's reader; the lane ticket is taken before the hand-off so
    worker start-up order cannot reorder a room's commands.
    """

    def __init__(self, store: RoomStore, registry: ConnectionRegistry,
                 settlement: Optional[SettlementService], deliver: DeliverFn,
                 schedule: ScheduleFn, grace_period: float = 300.0,
                 spawn: SpawnFn = run_inline):
        self.store = store
        self.registry = registry
        self.settlement = settlement
        self.lanes = RoomLanes()
        self.matchmaking = MatchmakingHandler(store, registry)
        self.escrow = EscrowHandler(settlement)
        self.winner = WinnerHandler(settlement)
        self.grace_period = grace_period
        self._deliver_fn = deliver
        self._schedule = schedule
        self._spawn = spawn

    # ---- transport entry points ----

    def connect(self, conn_id: str, namespace: str = '/ws') -> str:
        return self.registry.register(conn_id, namespace)

    def handle_message(self, conn_id: str, raw: Any) -> None:
        try:
            cmd = decode_command(raw)
        except ProtocolError as exc:
            log.warning(f"[bad-message] conn={conn_id} error={exc}")
            self.deliver(send(conn_id, Event.ERROR, error=str(exc)))
            return
        log.info(f"[message] conn={conn_id} type={cmd.type} room={cmd.room_id}")

        if cmd.type == Command.CREATE_ROOM:
            self.deliver(self.matchmaking.create_room(conn_id, cmd))
            return

        failure = FAILURE_EVENTS.get(cmd.type, Event.ERROR)
        if not cmd.room_id:
            self.deliver(send(conn_id, failure, error='roomId is required'))
            return

        ticket = self.lanes.reserve(cmd.room_id)
        self._spawn(self._run_command, ticket, conn_id, cmd, failure)

    def _run_command(self, ticket: Ticket, conn_id: str, cmd: InboundCommand, failure: str) -> None:
        with ticket:
            room = self.store.get_room(cmd.room_id)
            if room is None:
                log.info(f"[room-missing] conn={conn_id} type={cmd.type} room={cmd.room_id}")
                self.deliver(send(conn_id, failure, cmd.room_id, error='Room not found'))
                return
            self._dispatch(conn_id, room, cmd)

    def disconnect(self, conn_id: str) -> None:
        conn = self.registry.unregister(conn_id)
        if not conn or not conn.room_code:
            return
        if conn.is_host:
            self._host_lost(conn)
        else:
            # Queued behind whatever the guest sent before dropping
            self._spawn(self._guest_lost, self.lanes.reserve(conn.room_code), conn)

    # ---- dispatch ----

    def _dispatch(self, conn_id: str, room: Room, cmd: InboundCommand) -> None:
        t = cmd.type
        if t == Command.GET_ROOM_INFO:
            self.deliver(self.matchmaking.room_info(conn_id, room))
        elif t == Command.JOIN_ROOM:
            self.deliver(self.matchmaking.join_room(conn_id, room, cmd))
        elif t == Command.HANDSHAKE_ACCEPT:
            out, pending = self.matchmaking.handshake_accept(conn_id, room)
            # Handshake replies go out before the contract call starts
            self.deliver(out)
            if pending is not None:
                self.deliver(self.escrow.create_tournament(pending))
        elif t == Command.HANDSHAKE_REJECT:
            self.deliver(self.matchmaking.handshake_reject(conn_id, room, cmd))
        elif t == Command.PLAYER_READY:
            self.deliver(self.matchmaking.player_ready(conn_id, room))
        elif t == Command.STAKE_COMPLETED:
            self.deliver(self.escrow.stake_completed(conn_id, room, cmd))
        elif t == Command.ANNOUNCE_WINNER:
            self.deliver(self.winner.announce_winner(conn_id, room, cmd))

    def deliver(self, batch: Iterable[Outbound]) -> None:
        for outbound in batch:
            conn = self.registry.lookup(outbound.connection_id)
            if conn is None:
                log.debug(f"[deliver-skip] conn={outbound.connection_id} type={outbound.type} reason=gone")
                continue
            self._deliver_fn(conn, outbound.payload)

    # ---- disconnect policy ----

    def _host_lost(self, conn: Connection) -> None:
        code = conn.room_code
        if self.store.get_room(code) is None:
            return
        log.info(f"[host-lost] room={code} conn={conn.id} cleanup_in={self.grace_period}s")
        self._schedule(self.grace_period, self.expire_host, code, conn.id)

    def expire_host(self, code: str, host_conn: str) -> None:
        """Grace period over: drop the room unless it changed hands."""
        with self.lanes.serialized(code):
            room = self.store.get_room(code)
            if room is None or room.host_conn != host_conn:
                return
            self.store.delete_room(code)
            self.registry.detach(room.guest_conn, code)
            log.info(f"[room-expired] room={code} guest={room.guest_conn} active_rooms={len(self.store)}")
            self.deliver(send(room.guest_conn, Event.HOST_DISCONNECTED, code))

    def _guest_lost(self, ticket: Ticket, conn: Connection) -> None:
        code = conn.room_code
        with ticket:
            room = self.store.get_room(code)
            if room is None or room.guest_conn != conn.id:
                return
            if room.status == RoomStatus.HANDSHAKING:
                room.detach_guest()
                room.advance(RoomStatus.WAITING)
            else:
                # Payload stays so the winner can still be validated
                room.detach_guest(keep_payload=True)
            log.info(f"[guest-lost] room={code} conn={conn.id} status={room.status.value}")
            self.deliver(send(room.host_conn, Event.GUEST_DISCONNECTED, code))

    def stats(self) -> Dict[str, Any]:
        return {
            'activeRooms': len(self.store),
            'activeClients': len(self.registry),
        }
