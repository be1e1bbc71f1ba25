"""Typed domain exceptions for battle operations.

Rejected user operations (duplicate join, wrong funder, late cancel) are not
exceptions: they return False to the caller. Exceptions are reserved for
conditions the caller cannot recover from by asking the user again, and for
collaborators that are unavailable.
"""


class RumbleError(Exception):
    """Base exception for battle domain errors."""


class BattleSlotOccupiedError(RumbleError):
    """A non-finished battle already occupies the requested public or private slot.

    Attributes:
        battle_id: The id of the battle holding the slot.

    """

    def __init__(self, battle_id: str) -> None:
        self.battle_id = battle_id
        super().__init__(f"battle {battle_id} is still in progress")


class InvalidBattleError(RumbleError, ValueError):
    """A battle record violates a structural invariant (duplicate player, unknown winner, etc.)."""


class UpstreamUnavailableError(RumbleError):
    """An external collaborator (price oracle, token ledger) could not answer.

    Funding paths treat this as a rejection and never proceed with default values.
    """


class PriceUnavailableError(UpstreamUnavailableError):
    """No price source produced a usable reference price."""


class LedgerError(UpstreamUnavailableError):
    """The token ledger failed to read an allowance or execute a transfer batch."""
