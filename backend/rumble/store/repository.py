"""Battle store: the single source of truth for battles, stats and permissions."""

import asyncio
import secrets
import time
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import TypeVar

import structlog
from pydantic import ValidationError

from rumble.logic.enums import BattleStatus, StatName, Visibility
from rumble.logic.exceptions import BattleSlotOccupiedError
from rumble.logic.models import DEFAULT_THEME, Battle, ChannelRef, PlayerStats, utc_now
from rumble.logic.simulator import RoundResult
from rumble.store.document import BattleDocument, parse_document
from rumble.store.storage import DocumentCorruptError, DocumentStorage

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_HISTORY_LIMIT = 100


def new_battle_id() -> str:
    return f"battle-{time.time_ns() // 1_000_000}-{secrets.token_hex(4)}"


class BattleStore:
    """Battle repository backed by one persisted document.

    Every operation is a read-modify-write of the whole document performed
    under a single asyncio.Lock, so concurrent handlers in one process never
    lose an update. Mutations are applied to a copy and committed only after
    the copy was saved; an operation that changes nothing writes nothing.

    Limitation: one writer process per document.
    """

    def __init__(
        self,
        storage: DocumentStorage,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._storage = storage
        self._history_limit = history_limit
        self._clock = clock
        self._lock = asyncio.Lock()
        self._document: BattleDocument | None = None

    def _current(self) -> BattleDocument:
        """Load the document on first access. Must be called under the lock."""
        if self._document is not None:
            return self._document
        try:
            raw = self._storage.load()
            document = BattleDocument() if raw is None else parse_document(raw)
        except (DocumentCorruptError, ValidationError, ValueError):
            logger.exception("battle document unreadable, starting from an empty document")
            document = BattleDocument()
            self._storage.save(document.model_dump(mode="json"))
        self._document = document
        return document

    async def _read(self, fn: Callable[[BattleDocument], T]) -> T:
        async with self._lock:
            return fn(self._current())

    async def _write(self, fn: Callable[[BattleDocument], T]) -> T:
        async with self._lock:
            current = self._current()
            working = current.model_copy(deep=True)
            result = fn(working)
            if working != current:
                self._storage.save(working.model_dump(mode="json"))
                self._document = working
            return result

    # --- battles ---

    async def create_battle(
        self,
        visibility: Visibility,
        space_id: str,
        channel_id: str,
        admin_id: str,
        *,
        reward_amount: int | None = None,
        is_test: bool = False,
        theme: str = DEFAULT_THEME,
    ) -> Battle:
        """Create a collecting battle in the public slot or the community's private slot.

        Raises BattleSlotOccupiedError if the slot holds a battle that has not finished.
        """

        def create(document: BattleDocument) -> Battle:
            holder = document.slot_holder(visibility, space_id)
            if holder is not None and not holder.is_finished:
                raise BattleSlotOccupiedError(holder.battle_id)
            battle = Battle(
                battle_id=new_battle_id(),
                space_id=space_id,
                channel_id=channel_id,
                admin_id=admin_id,
                visibility=visibility,
                reward_amount=reward_amount,
                is_test=is_test,
                theme=theme,
                created_at=self._clock(),
            )
            document.put(battle)
            return battle

        battle = await self._write(create)
        logger.info("battle created", battle_id=battle.battle_id, visibility=visibility, space_id=space_id)
        return battle

    async def find_by_id(self, battle_id: str) -> Battle | None:
        return await self._read(lambda d: d.find(battle_id))

    async def find_by_channel(self, channel_id: str) -> Battle | None:
        return await self._read(lambda d: next((b for b in d.active_battles() if b.channel_id == channel_id), None))

    async def find_by_channel_and_admin(self, channel_id: str, admin_id: str) -> Battle | None:
        return await self._read(
            lambda d: next(
                (b for b in d.active_battles() if b.channel_id == channel_id and b.admin_id == admin_id),
                None,
            ),
        )

    async def find_for_reaction(self, channel_id: str, space_id: str | None, message_id: str | None = None) -> Battle | None:
        """Resolve the battle a join reaction targets.

        A reaction on a battle's announcement or thread belongs to that battle.
        Otherwise the community's private battle announced in this channel is
        used, then the public battle while it still takes players, and finally
        any battle announced in the channel.
        """

        def resolve(document: BattleDocument) -> Battle | None:
            battles = document.active_battles()
            if message_id is not None:
                target = next((b for b in battles if message_id in (b.announcement_id, b.thread_id)), None)
                if target is not None:
                    return target
            if space_id is not None:
                private = document.private_battles.get(space_id)
                if private is not None and not private.is_finished and private.channel_id == channel_id:
                    return private
            public = document.public_battle
            if public is not None and public.is_joinable:
                return public
            return next((b for b in battles if b.channel_id == channel_id), None)

        return await self._read(resolve)

    async def active_battles(self) -> list[Battle]:
        return await self._read(lambda d: d.active_battles())

    async def add_participant(self, battle_id: str, player_id: str) -> bool:
        """Append the player once if the battle exists, is joinable and they are absent."""

        def add(document: BattleDocument) -> bool:
            battle = document.find(battle_id)
            if battle is None or not battle.is_joinable or player_id in battle.participants:
                return False
            document.put(battle.evolve(participants=(*battle.participants, player_id)))
            return True

        return await self._write(add)

    async def set_status(self, battle_id: str, status: BattleStatus) -> Battle | None:
        return await self.mutate_battle(battle_id, lambda b: b.evolve(status=status))

    async def update_battle(self, battle: Battle) -> bool:
        """Replace the stored record with the same id. Returns False if it is gone."""

        def replace(document: BattleDocument) -> bool:
            if document.find(battle.battle_id) is None:
                return False
            document.put(battle)
            return True

        return await self._write(replace)

    async def mutate_battle(self, battle_id: str, fn: Callable[[Battle], Battle | None]) -> Battle | None:
        """Apply fn to the latest record of a non-finished battle and store the result.

        fn returning None leaves the record untouched. Returns the stored record,
        or None when the battle is gone or fn declined.
        """

        def mutate(document: BattleDocument) -> Battle | None:
            battle = document.find(battle_id)
            if battle is None:
                return None
            updated = fn(battle)
            if updated is None:
                return None
            if updated.battle_id != battle_id:
                raise ValueError(f"mutation changed battle id {battle_id} to {updated.battle_id}")
            if updated.is_finished:
                self._archive(document, updated)
            else:
                document.put(updated)
            return updated

        return await self._write(mutate)

    async def record_round(
        self,
        battle_id: str,
        play: Callable[[Battle], RoundResult | None],
    ) -> tuple[Battle, RoundResult] | None:
        """Play one round against the latest active record and persist it in one write.

        The round counter, eliminated set, runner-up buffer (only when the round
        eliminated someone) and the round's stat deltas land together.
        """

        def record(document: BattleDocument) -> tuple[Battle, RoundResult] | None:
            battle = document.find(battle_id)
            if battle is None or battle.status != BattleStatus.ACTIVE:
                return None
            result = play(battle)
            if result is None:
                return None
            changes: dict[str, object] = {"current_round": battle.current_round + 1, "eliminated": result.eliminated}
            if result.runner_up_changed:
                changes["winners"] = result.runner_up
            updated = battle.evolve(**changes)
            document.put(updated)
            self._apply_stats(document, result.stat_deltas)
            return updated, result

        return await self._write(record)

    async def finish(
        self,
        battle_id: str,
        *,
        winners: Iterable[str] = (),
        cancelled: bool = False,
        stat_deltas: Mapping[str, Mapping[StatName, int]] | None = None,
    ) -> Battle | None:
        """Mark the battle finished and move it into history.

        Optional stat deltas are applied in the same write, so settlement either
        fully lands or not at all.
        """

        def finish(document: BattleDocument) -> Battle | None:
            battle = document.find(battle_id)
            if battle is None:
                return None
            finished = battle.evolve(
                status=BattleStatus.FINISHED,
                winners=tuple(winners),
                cancelled=cancelled,
                ended_at=self._clock(),
            )
            self._archive(document, finished)
            if stat_deltas:
                self._apply_stats(document, stat_deltas)
            return finished

        battle = await self._write(finish)
        if battle is not None:
            logger.info("battle finished", battle_id=battle_id, cancelled=cancelled, winners=list(battle.winners))
        return battle

    async def update_history(self, battle_id: str, fn: Callable[[Battle], Battle]) -> Battle | None:
        """Apply fn to an archived battle, e.g. to record a payout."""

        def update(document: BattleDocument) -> Battle | None:
            for index in range(len(document.history) - 1, -1, -1):
                if document.history[index].battle_id == battle_id:
                    document.history[index] = fn(document.history[index])
                    return document.history[index]
            return None

        return await self._write(update)

    async def history(self, limit: int | None = None) -> list[Battle]:
        """Most recent finished battles, newest first."""
        return await self._read(lambda d: list(reversed(d.history))[:limit])

    def _archive(self, document: BattleDocument, battle: Battle) -> None:
        document.release(battle)
        document.archive(battle, self._history_limit)

    # --- player stats ---

    @staticmethod
    def _apply_stats(document: BattleDocument, deltas: Mapping[str, Mapping[StatName, int]]) -> None:
        for user_id, counts in deltas.items():
            stats = document.player_stats.get(user_id) or PlayerStats(user_id=user_id)
            for stat, amount in counts.items():
                if amount:
                    stats = stats.incremented(StatName(stat), amount)
            document.player_stats[user_id] = stats

    async def increment_stats(self, deltas: Mapping[str, Mapping[StatName, int]]) -> None:
        await self._write(lambda d: self._apply_stats(d, deltas))

    async def get_player_stats(self, user_id: str) -> PlayerStats:
        return await self._read(lambda d: d.player_stats.get(user_id) or PlayerStats(user_id=user_id))

    async def get_leaderboard(self, metric: StatName = StatName.WINS, limit: int = 10) -> list[PlayerStats]:
        """Players with a positive value for metric, highest first."""

        def top(document: BattleDocument) -> list[PlayerStats]:
            ranked = [s for s in document.player_stats.values() if s.get(metric) > 0]
            ranked.sort(key=lambda s: s.get(metric), reverse=True)
            return ranked[:limit]

        return await self._read(top)

    # --- permissions ---

    async def grant_permission(self, space_id: str, user_id: str) -> bool:
        def grant(document: BattleDocument) -> bool:
            allowed = document.battle_permissions.setdefault(space_id, [])
            if user_id in allowed:
                return False
            allowed.append(user_id)
            return True

        return await self._write(grant)

    async def revoke_permission(self, space_id: str, user_id: str) -> bool:
        def revoke(document: BattleDocument) -> bool:
            allowed = document.battle_permissions.get(space_id, [])
            if user_id not in allowed:
                return False
            allowed.remove(user_id)
            if not allowed:
                del document.battle_permissions[space_id]
            return True

        return await self._write(revoke)

    async def has_permission(self, space_id: str, user_id: str) -> bool:
        return await self._read(lambda d: user_id in d.battle_permissions.get(space_id, []))

    async def list_permissions(self, space_id: str) -> list[str]:
        return await self._read(lambda d: list(d.battle_permissions.get(space_id, [])))

    # --- public channels ---

    async def register_public_channel(self, channel_id: str, space_id: str) -> bool:
        """Add a channel to the public narration list. Returns False if already present."""

        def register(document: BattleDocument) -> bool:
            if any(c.channel_id == channel_id for c in document.public_channels):
                return False
            document.public_channels.append(ChannelRef(channel_id=channel_id, space_id=space_id))
            return True

        return await self._write(register)

    async def public_channels(self) -> list[ChannelRef]:
        return await self._read(lambda d: list(d.public_channels))
