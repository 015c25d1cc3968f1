import secrets
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class RoomStatus(str, Enum):
    WAITING = 'waiting'
    HANDSHAKING = 'handshaking'
    ACCEPTED = 'accepted'
    TOURNAMENT = 'tournament'
    READY_FOR_COMPETITION = 'ready_for_competition'
    WINNER_ANNOUNCED = 'winner_announced'
    # Reserved; never entered by this server
    ERROR = 'error'


_STATUS_RANK = {
    RoomStatus.WAITING: 0,
    RoomStatus.HANDSHAKING: 1,
    RoomStatus.ACCEPTED: 2,
    RoomStatus.TOURNAMENT: 3,
    RoomStatus.READY_FOR_COMPETITION: 4,
    RoomStatus.WINNER_ANNOUNCED: 5,
}


class JoinError(str, Enum):
    NOT_FOUND = 'not_found'
    FULL = 'full'
    STAKE_MISMATCH = 'stake_mismatch'
    BET_MISMATCH = 'bet_mismatch'


DEFAULT_BET = 'LONG'


def generate_room_code() -> str:
    """Eight uppercase hex characters, e.g. ``A1B2C3D4``."""
    return secrets.token_hex(4).upper()


def participant_address(payload: Optional[Dict[str, Any]]) -> Optional[str]:
    """On-chain address from a host/guest payload.

    Older clients put the guest's address in ``hostAddress`` as well, so
    that key is the fallback.
    """
    if not payload:
        return None
    addr = payload.get('address') or payload.get('hostAddress')
    return str(addr) if addr else None


@dataclass
class Connection:
    id: str
    namespace: str = '/ws'
    room_code: Optional[str] = None
    is_host: bool = False

    def to_dict(self):
        return {
            'id': self.id,
            'room_code': self.room_code,
            'is_host': self.is_host,
        }


@dataclass
class Room:
    code: str
    host_conn: Optional[str]
    host_payload: Dict[str, Any]
    required_stake: Any = 0
    bet_type: str = DEFAULT_BET
    guest_conn: Optional[str] = None
    guest_payload: Optional[Dict[str, Any]] = None
    status: RoomStatus = RoomStatus.WAITING
    tournament_id: Optional[int] = None
    tournament_tx_hash: Optional[str] = None
    host_staked: bool = False
    guest_staked: bool = False
    host_ready: bool = False
    guest_ready: bool = False
    winner_address: Optional[str] = None
    winner_tx_hash: Optional[str] = None
    created_at: float = field(default_factory=time.time)

    @property
    def host_address(self) -> Optional[str]:
        return participant_address(self.host_payload)

    @property
    def guest_address(self) -> Optional[str]:
        return participant_address(self.guest_payload)

    def has_guest(self) -> bool:
        return self.guest_conn is not None

    def is_participant(self, conn_id: str) -> bool:
        return conn_id is not None and conn_id in (self.host_conn, self.guest_conn)

    def role_of(self, conn_id: str) -> Optional[str]:
        if conn_id is None:
            return None
        if conn_id == self.host_conn:
            return 'host'
        if conn_id == self.guest_conn:
            return 'guest'
        return None

    def participants(self):
        """Connection ids of the host and guest slots that are filled."""
        return [c for c in (self.host_conn, self.guest_conn) if c is not None]

    def reached(self, status: RoomStatus) -> bool:
        return _STATUS_RANK.get(self.status, -1) >= _STATUS_RANK[status]

    def advance(self, status: RoomStatus) -> bool:
        """Move to ``status`` if it ranks above the current one.

        ``handshaking -> waiting`` is the only allowed step backwards.
        Returns True when the status changed.
        """
        if self.status == RoomStatus.HANDSHAKING and status == RoomStatus.WAITING:
            self.status = status
            return True
        if _STATUS_RANK.get(status, -1) > _STATUS_RANK.get(self.status, -1):
            self.status = status
            return True
        return False

    def detach_guest(self, keep_payload: bool = False) -> Optional[str]:
        """Empty the guest slot; returns the connection id that held it.

        Readiness is reset on both sides so the next pairing starts over.
        """
        conn_id = self.guest_conn
        self.guest_conn = None
        self.host_ready = False
        self.guest_ready = False
        if not keep_payload:
            self.guest_payload = None
            self.guest_staked = False
        return conn_id

    def public_info(self) -> Dict[str, Any]:
        return {
            'roomId': self.code,
            'requiredStake': self.required_stake,
            'betType': self.bet_type,
            'hostData': self.host_payload,
            'tournamentId': self.tournament_id,
        }

    def to_dict(self):
        info = self.public_info()
        info.update({
            'status': self.status.value,
            'hasGuest': self.has_guest(),
            'hostStaked': self.host_staked,
            'guestStaked': self.guest_staked,
            'createdAt': self.created_at,
        })
        return info
