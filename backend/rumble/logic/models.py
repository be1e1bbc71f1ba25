"""Persistent battle and player models.

Battle records are frozen: every change goes through the BattleStore, which
produces an updated copy against the latest persisted record.
"""

from datetime import UTC, datetime
from typing import Annotated, Self

from pydantic import BaseModel, Field, PlainSerializer, model_validator

from rumble.logic.enums import JOINABLE_STATUSES, BattleStatus, StatName, Visibility
from rumble.logic.exceptions import InvalidBattleError

MAX_WINNERS = 3
DEFAULT_THEME = "default"

# Token amounts are unbounded integers (wei-like units). JSON consumers outside
# Python lose precision on large numbers, so they are written as decimal strings.
TokenAmount = Annotated[int, Field(ge=0), PlainSerializer(str, return_type=str, when_used="json")]


def utc_now() -> datetime:
    return datetime.now(UTC)


class Battle(BaseModel, frozen=True):
    """One battle royale instance, from creation to settlement."""

    battle_id: str
    space_id: str
    channel_id: str
    admin_id: str
    visibility: Visibility = Visibility.PRIVATE
    status: BattleStatus = BattleStatus.COLLECTING
    participants: tuple[str, ...] = ()  # join order
    eliminated: tuple[str, ...] = ()  # elimination order, revival removes
    winners: tuple[str, ...] = ()  # [3rd, 2nd] while active, [1st, 2nd, 3rd] once finished
    current_round: int = Field(default=0, ge=0)
    reward_amount: TokenAmount | None = None
    reward_distributed: bool = False
    transaction_hash: str | None = None
    is_test: bool = False  # all payouts go to the admin
    theme: str = DEFAULT_THEME
    tip_received: bool = False
    tip_amount: TokenAmount = 0
    cancelled: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    started_at: datetime | None = None
    ended_at: datetime | None = None
    thread_id: str | None = None
    announcement_id: str | None = None

    @model_validator(mode="after")
    def _validate_membership(self) -> Self:
        if len(set(self.participants)) != len(self.participants):
            raise InvalidBattleError(f"battle {self.battle_id} has duplicate participants")
        if len(set(self.eliminated)) != len(self.eliminated):
            raise InvalidBattleError(f"battle {self.battle_id} has duplicate eliminations")
        joined = set(self.participants)
        if not joined.issuperset(self.eliminated):
            raise InvalidBattleError(f"battle {self.battle_id} eliminated a non-participant")
        if len(self.winners) > MAX_WINNERS:
            raise InvalidBattleError(f"battle {self.battle_id} has more than {MAX_WINNERS} winners")
        if not joined.issuperset(self.winners):
            raise InvalidBattleError(f"battle {self.battle_id} has a winner who never joined")
        return self

    def evolve(self, **changes: object) -> Self:
        """Return a validated copy with the given fields replaced."""
        return type(self).model_validate(self.model_dump() | changes)

    @property
    def is_private(self) -> bool:
        return self.visibility == Visibility.PRIVATE

    @property
    def is_finished(self) -> bool:
        return self.status == BattleStatus.FINISHED

    @property
    def is_joinable(self) -> bool:
        return self.status in JOINABLE_STATUSES

    @property
    def has_reward(self) -> bool:
        return self.reward_amount is not None and self.reward_amount > 0

    @property
    def active_participants(self) -> list[str]:
        """Participants not currently eliminated, in join order."""
        out = set(self.eliminated)
        return [p for p in self.participants if p not in out]


class PlayerStats(BaseModel, frozen=True):
    """Monotonic per-player counters."""

    user_id: str
    battles: int = Field(default=0, ge=0)
    wins: int = Field(default=0, ge=0)  # top-3 finishes
    kills: int = Field(default=0, ge=0)
    deaths: int = Field(default=0, ge=0)
    revives: int = Field(default=0, ge=0)

    def incremented(self, stat: StatName, amount: int = 1) -> Self:
        return self.model_copy(update={stat.value: getattr(self, stat.value) + amount})

    def get(self, stat: StatName) -> int:
        return getattr(self, stat.value)


class Payout(BaseModel, frozen=True):
    """One transfer instruction handed to the token ledger."""

    recipient: str
    amount: TokenAmount


class ChannelRef(BaseModel, frozen=True):
    """A channel that receives public battle narration."""

    channel_id: str
    space_id: str
