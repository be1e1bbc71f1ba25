from rumble.tests.mocks.messaging import (
    MockAdminDirectory,
    MockLedger,
    MockMessenger,
    MockPriceOracle,
    MockPriceSource,
    SentMessage,
)
from rumble.tests.mocks.random_source import ScriptedRandom

__all__ = [
    "MockAdminDirectory",
    "MockLedger",
    "MockMessenger",
    "MockPriceOracle",
    "MockPriceSource",
    "ScriptedRandom",
    "SentMessage",
]
