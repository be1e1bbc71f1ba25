"""Persisted battle document and its schema upgrade.

The whole bot state lives in one JSON document. The current layout is
schema_version 2. Older documents (the unversioned camelCase layout) are
converted once by upgrade_document before validation; nothing else in the
code base knows about the old shape.
"""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from rumble.logic.enums import BattleStatus, Visibility
from rumble.logic.models import Battle, ChannelRef, PlayerStats

SCHEMA_VERSION = 2

_V1_BATTLE_KEYS = {
    "battleId": "battle_id",
    "channelId": "channel_id",
    "spaceId": "space_id",
    "adminId": "admin_id",
    "participants": "participants",
    "status": "status",
    "currentRound": "current_round",
    "eliminated": "eliminated",
    "winners": "winners",
    "rewardAmount": "reward_amount",
    "rewardDistributed": "reward_distributed",
    "tipReceived": "tip_received",
    "tipAmount": "tip_amount",
    "isTest": "is_test",
    "theme": "theme",
    "threadId": "thread_id",
    "announcementId": "announcement_id",
}
_V1_TIMESTAMP_KEYS = {"createdAt": "created_at", "startedAt": "started_at", "endedAt": "ended_at"}


class BattleDocument(BaseModel):
    """Top-level persisted state: active slots, history, stats and permissions."""

    schema_version: Literal[2] = SCHEMA_VERSION
    public_battle: Battle | None = None
    private_battles: dict[str, Battle] = Field(default_factory=dict)  # space id -> battle
    history: list[Battle] = Field(default_factory=list)  # oldest first
    player_stats: dict[str, PlayerStats] = Field(default_factory=dict)
    battle_permissions: dict[str, list[str]] = Field(default_factory=dict)  # space id -> user ids
    public_channels: list[ChannelRef] = Field(default_factory=list)

    def active_battles(self) -> list[Battle]:
        """Non-finished battles: the public slot first, then private slots."""
        battles = [self.public_battle] if self.public_battle is not None else []
        battles.extend(self.private_battles.values())
        return [b for b in battles if not b.is_finished]

    def find(self, battle_id: str) -> Battle | None:
        return next((b for b in self.active_battles() if b.battle_id == battle_id), None)

    def slot_holder(self, visibility: Visibility, space_id: str) -> Battle | None:
        if visibility == Visibility.PUBLIC:
            return self.public_battle
        return self.private_battles.get(space_id)

    def put(self, battle: Battle) -> None:
        """Store a battle in its slot, replacing whatever was there."""
        if battle.visibility == Visibility.PUBLIC:
            self.public_battle = battle
        else:
            self.private_battles[battle.space_id] = battle

    def release(self, battle: Battle) -> None:
        """Free the slot held by this battle id, if it still holds it."""
        if self.public_battle is not None and self.public_battle.battle_id == battle.battle_id:
            self.public_battle = None
        held = self.private_battles.get(battle.space_id)
        if held is not None and held.battle_id == battle.battle_id:
            del self.private_battles[battle.space_id]

    def archive(self, battle: Battle, limit: int) -> None:
        self.history.append(battle)
        if len(self.history) > limit:
            del self.history[: len(self.history) - limit]


def _epoch_ms_to_iso(value: Any) -> str | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=UTC).isoformat()


def _upgrade_v1_battle(raw: dict[str, Any], *, archived: bool = False) -> dict[str, Any]:
    battle = {new: raw[old] for old, new in _V1_BATTLE_KEYS.items() if old in raw}
    for old, new in _V1_TIMESTAMP_KEYS.items():
        if raw.get(old) is not None:
            battle[new] = _epoch_ms_to_iso(raw[old])
    battle["visibility"] = Visibility.PRIVATE if raw.get("isPrivate") else Visibility.PUBLIC
    # older records carried duplicate eliminations after revive-then-eliminate
    battle["eliminated"] = list(dict.fromkeys(battle.get("eliminated", [])))
    if archived:
        battle["status"] = BattleStatus.FINISHED
        battle["cancelled"] = not raw.get("winners")
    return battle


def _upgrade_v1(raw: dict[str, Any]) -> dict[str, Any]:
    upgraded: dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        "history": [_upgrade_v1_battle(b, archived=True) for b in raw.get("pastBattles", [])],
        "player_stats": {
            user_id: {"user_id": user_id} | {k: v for k, v in stats.items() if k != "userId"}
            for user_id, stats in raw.get("playerStats", {}).items()
        },
    }
    active = raw.get("activeBattle")
    if active:
        battle = _upgrade_v1_battle(active)
        if battle["visibility"] == Visibility.PUBLIC:
            upgraded["public_battle"] = battle
        else:
            upgraded["private_battles"] = {battle["space_id"]: battle}
    return upgraded


def upgrade_document(raw: dict[str, Any]) -> dict[str, Any]:
    """Bring a raw persisted document up to the current schema version.

    The custom fight-event list and the cached ETH price of the old layout
    are dropped: templates are built in and prices are never cached.
    """
    version = raw.get("schema_version", 1)
    if version == SCHEMA_VERSION:
        return raw
    if version == 1:
        return _upgrade_v1(raw)
    raise ValueError(f"unsupported battle document schema_version {version!r}")


def parse_document(raw: dict[str, Any]) -> BattleDocument:
    return BattleDocument.model_validate(upgrade_document(raw))
