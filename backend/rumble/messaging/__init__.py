"""Collaborator interfaces and message fan-out for the battle core."""

from rumble.logic.pricing import FallbackPriceOracle, PriceOracle, PriceSource, TipRange
from rumble.messaging.broadcast import battle_recipients, broadcast_to_battle
from rumble.messaging.protocol import AdminDirectory, Messenger, TokenLedger

__all__ = [
    "AdminDirectory",
    "FallbackPriceOracle",
    "Messenger",
    "PriceOracle",
    "PriceSource",
    "TipRange",
    "TokenLedger",
    "battle_recipients",
    "broadcast_to_battle",
]
