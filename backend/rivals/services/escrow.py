import logging
from typing import List, Optional

from rivals.errors import SettlementError
from rivals.models import Room, RoomStatus
from rivals.protocol import Event, InboundCommand, Outbound, broadcast, send
from rivals.settlement import SettlementService

log = logging.getLogger(__name__)

SERVICE_UNAVAILABLE = 'Tournament service not available'


def tournament_id_hint(room: Room) -> Optional[int]:
    """Client-supplied tournament id, host payload first."""
    for payload in (room.host_payload, room.guest_payload):
        raw = (payload or {}).get('tournamentId')
        if raw in (None, ''):
            continue
        try:
            hint = int(raw)
        except (TypeError, ValueError):
            log.warning(f"[tournament-hint-ignored] room={room.code} value={raw!r}")
            continue
        if hint > 0:
            return hint
        log.warning(f"[tournament-hint-ignored] room={room.code} value={raw!r}")
    return None


class EscrowHandler:
    """Tournament creation after the handshake and stake tracking.

    Runs inside the room's lane, so the blocking contract calls here
    hold back later commands for the same room only.
    """

    def __init__(self, settlement: Optional[SettlementService]):
        self.settlement = settlement

    def create_tournament(self, room: Room) -> List[Outbound]:
        targets = room.participants()
        if room.tournament_id is not None:
            return broadcast(
                targets, Event.TOURNAMENT_CREATED, room.code,
                tournamentId=room.tournament_id, txHash=room.tournament_tx_hash,
            )
        if self.settlement is None:
            log.warning(f"[tournament-create-skipped] room={room.code} reason=no_settlement")
            return broadcast(targets, Event.TOURNAMENT_CREATION_FAILED, room.code, error=SERVICE_UNAVAILABLE)
        hint = tournament_id_hint(room)
        log.info(
            f"[tournament-create] room={room.code} host={room.host_address} "
            f"guest={room.guest_address} hint={hint}"
        )
        try:
            receipt = self.settlement.create_tournament(room.host_address, room.guest_address, hint)
        except SettlementError as exc:
            log.error(f"[tournament-create-failed] room={room.code} error={exc}")
            return broadcast(
                targets, Event.TOURNAMENT_CREATION_FAILED, room.code,
                error=str(exc) or 'Failed to create tournament',
            )
        room.tournament_id = receipt.tournament_id
        room.tournament_tx_hash = receipt.tx_hash
        log.info(f"[tournament-created] room={room.code} tournament={receipt.tournament_id} tx={receipt.tx_hash}")
        # The guest may have dropped while the transaction confirmed
        return broadcast(
            room.participants(), Event.TOURNAMENT_CREATED, room.code,
            tournamentId=receipt.tournament_id, txHash=receipt.tx_hash,
        )

    def stake_completed(self, conn_id: str, room: Room, cmd: InboundCommand) -> List[Outbound]:
        role = room.role_of(conn_id)
        if role is None:
            log.warning(f"[stake-ignored] room={room.code} conn={conn_id} reason=not_participant")
            return []
        tx_hash = cmd.get('txHash')
        if room.status in (RoomStatus.READY_FOR_COMPETITION, RoomStatus.WINNER_ANNOUNCED):
            log.info(f"[stake-duplicate] room={room.code} role={role} tx={tx_hash}")
            return send(
                conn_id, Event.BOTH_PLAYERS_STAKED, room.code,
                tournamentId=room.tournament_id, message=_both_staked_message(),
            )
        if role == 'host':
            room.host_staked = True
        else:
            room.guest_staked = True
        log.info(f"[stake] room={room.code} role={role} tx={tx_hash}")

        if not (room.host_staked and room.guest_staked):
            other = 'guest' if role == 'host' else 'host'
            return send(
                conn_id, Event.WAITING_FOR_OPPONENT_STAKE, room.code,
                message=f'Waiting for {other} to complete their stake...',
            )

        if self._verify_deposits(room):
            room.advance(RoomStatus.READY_FOR_COMPETITION)
            log.info(f"[both-staked] room={room.code} tournament={room.tournament_id}")
            return broadcast(
                room.participants(), Event.BOTH_PLAYERS_STAKED, room.code,
                tournamentId=room.tournament_id, message=_both_staked_message(),
            )
        return send(
            conn_id, Event.WAITING_FOR_OPPONENT_STAKE, room.code,
            message='Waiting for opponent to complete their stake...',
        )

    def _verify_deposits(self, room: Room) -> bool:
        if self.settlement is None or room.tournament_id is None:
            log.warning(
                f"[stake-verify-skipped] room={room.code} tournament={room.tournament_id} "
                f"settlement={'yes' if self.settlement else 'no'}"
            )
            return False
        try:
            confirmed = self.settlement.both_deposited(room.tournament_id)
        except SettlementError as exc:
            log.error(f"[stake-verify-failed] room={room.code} tournament={room.tournament_id} error={exc}")
            return False
        if not confirmed:
            log.warning(f"[stake-verify-pending] room={room.code} tournament={room.tournament_id}")
        return bool(confirmed)


def _both_staked_message():
    return 'Both players have staked successfully. Competition can begin!'
