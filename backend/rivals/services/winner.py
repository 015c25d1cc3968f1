import logging
from typing import List, Optional

from rivals.errors import SettlementError
from rivals.models import Room, RoomStatus
from rivals.protocol import Event, InboundCommand, Outbound, broadcast, send
from rivals.services.escrow import SERVICE_UNAVAILABLE
from rivals.settlement import SettlementService

log = logging.getLogger(__name__)


def _same_address(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.lower() == b.lower()


class WinnerHandler:
    """Settles a finished match on the escrow contract."""

    def __init__(self, settlement: Optional[SettlementService]):
        self.settlement = settlement

    def announce_winner(self, conn_id: str, room: Room, cmd: InboundCommand) -> List[Outbound]:
        winner = cmd.get('winnerAddress')
        if not room.is_participant(conn_id):
            log.warning(f"[winner-ignored] room={room.code} conn={conn_id} reason=not_participant")
            return []
        if not isinstance(winner, str) or not (
            _same_address(winner, room.host_address) or _same_address(winner, room.guest_address)
        ):
            log.warning(f"[winner-ignored] room={room.code} conn={conn_id} winner={winner!r} reason=not_a_participant_address")
            return []

        if room.status == RoomStatus.WINNER_ANNOUNCED:
            log.info(f"[winner-duplicate] room={room.code} conn={conn_id}")
            return send(
                conn_id, Event.WINNER_ANNOUNCED, room.code,
                tournamentId=room.tournament_id,
                winnerAddress=room.winner_address,
                txHash=room.winner_tx_hash,
            )
        if self.settlement is None or room.tournament_id is None:
            log.warning(
                f"[winner-failed] room={room.code} tournament={room.tournament_id} "
                f"settlement={'yes' if self.settlement else 'no'}"
            )
            error = SERVICE_UNAVAILABLE if self.settlement is None else 'Tournament has not been created'
            return send(conn_id, Event.WINNER_ANNOUNCEMENT_FAILED, room.code, error=error)

        log.info(f"[winner-announce] room={room.code} tournament={room.tournament_id} winner={winner}")
        try:
            tx_hash = self.settlement.announce_winner(room.tournament_id, winner)
        except SettlementError as exc:
            log.error(f"[winner-failed] room={room.code} tournament={room.tournament_id} error={exc}")
            return send(
                conn_id, Event.WINNER_ANNOUNCEMENT_FAILED, room.code,
                error=str(exc) or 'Failed to announce winner',
            )
        room.winner_address = winner
        room.winner_tx_hash = tx_hash
        room.advance(RoomStatus.WINNER_ANNOUNCED)
        log.info(f"[winner-announced] room={room.code} tournament={room.tournament_id} tx={tx_hash}")
        return broadcast(
            room.participants(), Event.WINNER_ANNOUNCED, room.code,
            tournamentId=room.tournament_id, winnerAddress=winner, txHash=tx_hash,
        )
