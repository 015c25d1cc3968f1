"""Exception hierarchy for the room server.

Handlers turn these into reply events; only ``SettlementUnavailable``
escapes, from ``create_app`` when ``REQUIRE_SETTLEMENT`` is set.
"""


class RivalsError(Exception):
    """Base exception for the room server."""


class ProtocolError(RivalsError):
    """Raised when an inbound message cannot be decoded into a command."""


class RoomCodeExhausted(RivalsError):
    """Raised when no unused room code was found within the attempt budget."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f'No free room code after {attempts} attempts')


class SettlementError(RivalsError):
    """Raised when a settlement contract call fails."""


class SettlementUnavailable(SettlementError):
    """Raised when the settlement client cannot be configured."""
