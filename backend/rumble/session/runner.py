"""
Battle runner: one asyncio task per active battle.

Each tick sleeps for the tick interval, plays one round against the latest
stored record and narrates it. When fewer than two players remain the runner
settles the battle once: it finalizes the podium, updates stats, and hands
the payout batch to the token ledger.
"""

import asyncio

import structlog

from rumble.logic.enums import BattleStatus, StatName, TickOutcome
from rumble.logic.events import event_script
from rumble.logic.exceptions import UpstreamUnavailableError
from rumble.logic.models import Battle
from rumble.logic.rng import RNG_VERSION, RandomSource, create_battle_rng, generate_seed
from rumble.logic.settlement import rank_winners, split_rewards
from rumble.logic.simulator import DEFAULT_RULES, SECOND_PLACE_THRESHOLD, RoundResult, RoundRules, play_round
from rumble.messaging.broadcast import broadcast_to_battle
from rumble.messaging.protocol import Messenger, TokenLedger
from rumble.session import narration
from rumble.store.repository import BattleStore

logger = structlog.get_logger()

DEFAULT_TICK_INTERVAL_SECONDS = 10.0


class BattleRunner:
    """Drive active battles to completion."""

    def __init__(
        self,
        store: BattleStore,
        messenger: Messenger,
        ledger: TokenLedger,
        *,
        tick_interval: float = DEFAULT_TICK_INTERVAL_SECONDS,
        rules: RoundRules = DEFAULT_RULES,
    ) -> None:
        self._store = store
        self._messenger = messenger
        self._ledger = ledger
        self._tick_interval = tick_interval
        self._rules = rules
        self._tasks: dict[str, asyncio.Task[Battle | None]] = {}

    @property
    def running_battle_ids(self) -> list[str]:
        return [battle_id for battle_id, task in self._tasks.items() if not task.done()]

    def is_running(self, battle_id: str) -> bool:
        task = self._tasks.get(battle_id)
        return task is not None and not task.done()

    def start(self, battle_id: str, seed_hex: str | None = None) -> asyncio.Task[Battle | None]:
        """Spawn the runner task for a battle. Returns the existing task if one is running."""
        existing = self._tasks.get(battle_id)
        if existing is not None and not existing.done():
            return existing
        seed_hex = seed_hex or generate_seed()
        task = asyncio.create_task(self._run_guarded(battle_id, seed_hex))
        self._tasks[battle_id] = task
        task.add_done_callback(lambda t, bid=battle_id: self._forget(bid, t))
        return task

    def _forget(self, battle_id: str, task: asyncio.Task[Battle | None]) -> None:
        if self._tasks.get(battle_id) is task:
            del self._tasks[battle_id]

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def _run_guarded(self, battle_id: str, seed_hex: str) -> Battle | None:
        """Task boundary: any failure is logged and reported once to the origin channel."""
        structlog.contextvars.bind_contextvars(battle_id=battle_id)
        logger.info("battle runner started", seed=seed_hex, rng_version=RNG_VERSION)
        try:
            return await self.run(battle_id, create_battle_rng(seed_hex))
        except asyncio.CancelledError:
            logger.info("battle runner cancelled")
            raise
        except Exception:
            logger.exception("battle runner failed")
            await self._notify_failure(battle_id)
            return None

    async def _notify_failure(self, battle_id: str) -> None:
        battle = await self._store.find_by_id(battle_id)
        channel_id = battle.channel_id if battle is not None else None
        if channel_id is None:
            archived = next((b for b in await self._store.history() if b.battle_id == battle_id), None)
            channel_id = archived.channel_id if archived is not None else None
        if channel_id is None:
            return
        try:
            await self._messenger.send_message(channel_id, narration.GENERIC_FAILURE)
        except Exception:
            logger.exception("failure notice not delivered", channel_id=channel_id)

    async def run(self, battle_id: str, rng: RandomSource | None = None) -> Battle | None:
        """Tick until the battle stops or settles. Returns the settled record, if any."""
        rng = rng or create_battle_rng()
        while True:
            await asyncio.sleep(self._tick_interval)
            outcome = await self.tick(battle_id, rng)
            if outcome == TickOutcome.STOPPED:
                logger.info("battle runner stopped", battle_id=battle_id)
                return None
            if outcome == TickOutcome.SETTLE:
                return await self.settle(battle_id)

    async def tick(self, battle_id: str, rng: RandomSource) -> TickOutcome:
        """Play and narrate one round against the latest stored record."""
        battle = await self._store.find_by_id(battle_id)
        if battle is None or battle.status != BattleStatus.ACTIVE:
            return TickOutcome.STOPPED
        if len(battle.active_participants) < SECOND_PLACE_THRESHOLD:
            return TickOutcome.SETTLE

        script = event_script(battle.theme)

        def play(latest: Battle) -> RoundResult | None:
            if len(latest.active_participants) < SECOND_PLACE_THRESHOLD:
                return None
            return play_round(latest.participants, latest.eliminated, latest.winners, script, rng, self._rules)

        recorded = await self._store.record_round(battle_id, play)
        if recorded is None:
            latest = await self._store.find_by_id(battle_id)
            if latest is None or latest.status != BattleStatus.ACTIVE:
                return TickOutcome.STOPPED
            return TickOutcome.SETTLE

        updated, result = recorded
        logger.info(
            "round played",
            battle_id=battle_id,
            round=updated.current_round,
            mass_event=result.mass_event,
            eliminated=list(result.eliminated_this_round),
            revived=list(result.revived_this_round),
            active=len(updated.active_participants),
        )
        await broadcast_to_battle(
            self._messenger,
            updated,
            narration.round_message(updated.current_round, result),
            await self._store.public_channels(),
        )
        return TickOutcome.PLAYED

    async def settle(self, battle_id: str) -> Battle | None:
        """Finalize a battle that has fewer than two active players. Runs at most once per battle."""
        battle = await self._store.find_by_id(battle_id)
        if battle is None or battle.status != BattleStatus.ACTIVE:
            return None

        winners = rank_winners(battle.active_participants, battle.winners)
        deltas: dict[str, dict[StatName, int]] = {p: {StatName.BATTLES: 1} for p in battle.participants}
        for winner in winners:
            deltas[winner][StatName.WINS] = 1

        finished = await self._store.finish(battle_id, winners=winners, stat_deltas=deltas)
        if finished is None:
            return None
        channels = await self._store.public_channels()

        payouts = split_rewards(finished.reward_amount, winners, finished.admin_id, is_test=finished.is_test)
        if not payouts:
            await broadcast_to_battle(self._messenger, finished, narration.winners_message(winners), channels)
            return finished

        try:
            transaction_hash = await self._ledger.execute_batch_transfer(finished.admin_id, payouts)
        except (UpstreamUnavailableError, OSError):
            logger.exception("reward payout failed", battle_id=battle_id, payouts=[p.model_dump(mode="json") for p in payouts])
            await broadcast_to_battle(
                self._messenger,
                finished,
                narration.payout_failed_message(winners),
                channels,
                use_thread=False,
            )
            return finished

        logger.info("rewards distributed", battle_id=battle_id, transaction_hash=transaction_hash)
        distributed = await self._store.update_history(
            battle_id,
            lambda b: b.evolve(reward_distributed=True, transaction_hash=transaction_hash),
        )
        await broadcast_to_battle(
            self._messenger,
            finished,
            narration.winners_message(
                winners,
                payouts,
                transaction_hash=transaction_hash,
                is_test=finished.is_test,
            ),
            channels,
        )
        return distributed or finished
