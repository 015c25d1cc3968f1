"""Room protocol services: matchmaking, escrow, winner settlement.

Handlers take already-resolved rooms and return outbound events,
keeping transport concerns in ``rivals.server`` and
``rivals.socketio_events``. ``scoring`` holds the competition
arithmetic clients use to pick the winner they announce.
"""
from rivals.services.scoring import ScoreResult, determine_winner, squad_change, winner_address

__all__ = ['ScoreResult', 'determine_winner', 'squad_change', 'winner_address']
