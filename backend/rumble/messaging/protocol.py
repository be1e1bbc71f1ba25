"""Narrow interfaces for the chat platform and the token ledger.

The battle core never touches a platform SDK directly. Adapters for a real
chat platform or chain client implement these ABCs; tests use the mocks in
rumble.tests.mocks.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from rumble.logic.models import Payout


class Messenger(ABC):
    """
    Outbound side of the chat platform.

    Failures surface as exceptions; callers that fan out to several channels
    catch and log them per recipient.
    """

    @abstractmethod
    async def send_message(self, channel_id: str, text: str, *, thread_id: str | None = None) -> str:
        """
        Post text to a channel, optionally inside a thread. Returns the message id.
        """
        ...

    @abstractmethod
    async def send_reaction(self, channel_id: str, event_id: str, symbol: str) -> None:
        """
        React to a message with a symbol.
        """
        ...


class AdminDirectory(ABC):
    """Answers whether a user administers a community."""

    @abstractmethod
    async def has_admin_permission(self, user_id: str, space_id: str) -> bool: ...


class TokenLedger(ABC):
    """
    Reward token operations.

    Both calls raise LedgerError on failure. A batch transfer either executes
    completely or raises; there is no partial success.
    """

    @abstractmethod
    async def check_approval(self, owner: str, spender: str, required_amount: int) -> bool:
        """
        Return True if owner allows spender to move at least required_amount.
        """
        ...

    @abstractmethod
    async def execute_batch_transfer(self, owner: str, transfers: Sequence[Payout]) -> str:
        """
        Move every payout from owner's balance atomically. Returns the transaction hash.
        """
        ...
