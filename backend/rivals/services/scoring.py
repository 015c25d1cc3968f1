from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from rivals.models import Room


@dataclass
class ScoreResult:
    winner: str  # 'host', 'guest' or 'tie'
    host_score: float
    guest_score: float


def squad_change(initial_prices: Dict[str, float], current_prices: Dict[str, float], symbols: Iterable[str]) -> float:
    """Mean percentage change over the squad's tokens.

    Tokens without a positive starting price or without a current price
    are left out; an empty squad scores 0.
    """
    changes = []
    for symbol in symbols:
        start = initial_prices.get(symbol)
        now = current_prices.get(symbol)
        if not start or start <= 0 or now is None:
            continue
        changes.append((now - start) / start * 100.0)
    if not changes:
        return 0.0
    return sum(changes) / len(changes)


def determine_winner(bet: str, host_change: float, guest_change: float) -> ScoreResult:
    """Compare the two squads under the room's shared bet.

    LONG rewards the larger rise; SHORT negates both changes so the
    larger fall wins.
    """
    if bet == 'SHORT':
        host_score, guest_score = -host_change, -guest_change
    else:
        host_score, guest_score = host_change, guest_change
    if host_score > guest_score:
        winner = 'host'
    elif guest_score > host_score:
        winner = 'guest'
    else:
        winner = 'tie'
    return ScoreResult(winner=winner, host_score=host_score, guest_score=guest_score)


def winner_address(room: Room, result: ScoreResult) -> Optional[str]:
    """Address to put in ANNOUNCE_WINNER; None on a tie."""
    if result.winner == 'host':
        return room.host_address
    if result.winner == 'guest':
        return room.guest_address
    return None
