"""Battle lifecycle: creation, joining, funding, cancellation and timeouts."""

import structlog

from rumble.logic.enums import BattleStatus, StatName, Visibility
from rumble.logic.exceptions import UpstreamUnavailableError
from rumble.logic.models import DEFAULT_THEME, Battle, PlayerStats, utc_now
from rumble.logic.pricing import PriceOracle
from rumble.messaging.broadcast import broadcast_to_battle
from rumble.messaging.protocol import AdminDirectory, Messenger, TokenLedger
from rumble.session import narration
from rumble.session.runner import BattleRunner
from rumble.session.timeout_manager import DEFAULT_JOIN_TIMEOUT_SECONDS, JoinTimeoutManager
from rumble.store.repository import BattleStore

logger = structlog.get_logger()

JOIN_SYMBOL = "\u2694\ufe0f"
JOIN_SYMBOL_ALIAS = "crossed_swords"
_VARIATION_SELECTORS = str.maketrans("", "", "\ufe0e\ufe0f")
_JOIN_SYMBOLS = frozenset({JOIN_SYMBOL.translate(_VARIATION_SELECTORS), JOIN_SYMBOL_ALIAS})

MIN_PARTICIPANTS = 2


def is_join_symbol(symbol: str) -> bool:
    """Accept the crossed swords emoji with or without variation selector, or its text alias."""
    return symbol.strip().translate(_VARIATION_SELECTORS).lower() in _JOIN_SYMBOLS


class BattleController:
    """
    Owns every battle status transition except the runner's settlement.

    Rejected operations return False and leave the store untouched. Each
    transition re-checks its precondition inside a single store mutation, so a
    concurrent transition can never be overwritten by a stale read.
    """

    def __init__(  # noqa: PLR0913
        self,
        store: BattleStore,
        messenger: Messenger,
        admins: AdminDirectory,
        oracle: PriceOracle,
        ledger: TokenLedger,
        runner: BattleRunner,
        *,
        bot_address: str,
        public_join_timeout_seconds: float = DEFAULT_JOIN_TIMEOUT_SECONDS,
    ) -> None:
        self._store = store
        self._messenger = messenger
        self._admins = admins
        self._oracle = oracle
        self._ledger = ledger
        self._runner = runner
        self._bot_address = bot_address
        self._join_timeout_seconds = public_join_timeout_seconds
        self._timeouts = JoinTimeoutManager(self._on_join_timeout, public_join_timeout_seconds)

    @property
    def store(self) -> BattleStore:
        return self._store

    @property
    def runner(self) -> BattleRunner:
        return self._runner

    @property
    def timeouts(self) -> JoinTimeoutManager:
        return self._timeouts

    async def _send(self, channel_id: str, text: str, *, thread_id: str | None = None) -> str | None:
        try:
            return await self._messenger.send_message(channel_id, text, thread_id=thread_id)
        except Exception:
            logger.exception("message not delivered", channel_id=channel_id)
            return None

    async def _broadcast(self, battle: Battle, text: str) -> None:
        await broadcast_to_battle(self._messenger, battle, text, await self._store.public_channels())

    # --- permissions ---

    async def can_launch(self, user_id: str, space_id: str) -> bool:
        """Community admins and explicitly permitted users may start battles."""
        if await self._admins.has_admin_permission(user_id, space_id):
            return True
        return await self._store.has_permission(space_id, user_id)

    async def grant_permission(self, actor_id: str, space_id: str, user_id: str) -> bool:
        if not await self._admins.has_admin_permission(actor_id, space_id):
            return False
        granted = await self._store.grant_permission(space_id, user_id)
        if granted:
            logger.info("battle permission granted", space_id=space_id, user_id=user_id, granted_by=actor_id)
        return granted

    async def revoke_permission(self, actor_id: str, space_id: str, user_id: str) -> bool:
        if not await self._admins.has_admin_permission(actor_id, space_id):
            return False
        revoked = await self._store.revoke_permission(space_id, user_id)
        if revoked:
            logger.info("battle permission revoked", space_id=space_id, user_id=user_id, revoked_by=actor_id)
        return revoked

    async def list_permissions(self, actor_id: str, space_id: str) -> list[str] | None:
        """Permitted users of a community, or None when the actor is not an admin."""
        if not await self._admins.has_admin_permission(actor_id, space_id):
            return None
        return await self._store.list_permissions(space_id)

    # --- creation ---

    async def create_battle(  # noqa: PLR0913
        self,
        admin_id: str,
        space_id: str,
        channel_id: str,
        *,
        visibility: Visibility = Visibility.PRIVATE,
        reward_amount: int | None = None,
        is_test: bool = False,
        theme: str = DEFAULT_THEME,
    ) -> Battle:
        """Create a collecting battle and announce it.

        Raises BattleSlotOccupiedError when the slot is taken. Public battles get
        a join timeout and register their channel for narration.
        """
        battle = await self._store.create_battle(
            visibility,
            space_id,
            channel_id,
            admin_id,
            reward_amount=reward_amount,
            is_test=is_test,
            theme=theme,
        )
        if visibility == Visibility.PUBLIC:
            await self._store.register_public_channel(channel_id, space_id)
            self._timeouts.schedule(battle.battle_id)
        announced = await self.announce(battle.battle_id)
        return announced or battle

    async def announce(self, battle_id: str) -> Battle | None:
        """Move a collecting battle to pending_tip, or pending_approval when the allowance is short.

        A ledger failure leaves the battle collecting; announce can be retried.
        """
        battle = await self._store.find_by_id(battle_id)
        if battle is None or battle.status != BattleStatus.COLLECTING:
            return None

        target = BattleStatus.PENDING_TIP
        if battle.has_reward:
            try:
                approved = await self._ledger.check_approval(battle.admin_id, self._bot_address, battle.reward_amount or 0)
            except (UpstreamUnavailableError, OSError):
                logger.warning("approval check failed, battle stays collecting", battle_id=battle_id, exc_info=True)
                return None
            if not approved:
                target = BattleStatus.PENDING_APPROVAL

        def transition(latest: Battle) -> Battle | None:
            return latest.evolve(status=target) if latest.status == BattleStatus.COLLECTING else None

        updated = await self._store.mutate_battle(battle_id, transition)
        if updated is None:
            return None

        text = narration.announcement_message(updated)
        if target == BattleStatus.PENDING_APPROVAL:
            text += "\n\n" + narration.approval_required_message(updated, self._bot_address)
        message_id = await self._send(updated.channel_id, text)
        if message_id is not None:
            updated = await self._store.mutate_battle(
                battle_id,
                lambda b: b.evolve(announcement_id=message_id, thread_id=b.thread_id or message_id),
            ) or updated
            # seed the join reaction on the announcement
            try:
                await self._messenger.send_reaction(updated.channel_id, message_id, JOIN_SYMBOL)
            except Exception:
                logger.exception("join reaction not added", battle_id=battle_id)
        logger.info("battle announced", battle_id=battle_id, status=updated.status)
        return updated

    # --- joining ---

    async def join(
        self,
        user_id: str,
        battle_id: str,
        symbol: str = JOIN_SYMBOL,
        *,
        space_id: str | None = None,
    ) -> bool:
        """Add a participant. Only the join gesture counts; private battles reject other communities."""
        if not is_join_symbol(symbol):
            return False
        battle = await self._store.find_by_id(battle_id)
        if battle is None:
            return False
        if battle.is_private and space_id is not None and space_id != battle.space_id:
            return False
        joined = await self._store.add_participant(battle_id, user_id)
        if joined:
            logger.info("player joined", battle_id=battle_id, user_id=user_id)
        return joined

    async def handle_reaction(  # noqa: PLR0913
        self,
        user_id: str,
        symbol: str,
        channel_id: str,
        space_id: str | None,
        message_id: str | None = None,
    ) -> bool:
        """Join through a reaction on a chat message, confirming in the reacting channel.

        message_id is the message that received the reaction; a reaction on a
        battle's announcement joins that battle.
        """
        if not is_join_symbol(symbol):
            return False
        battle = await self._store.find_for_reaction(channel_id, space_id, message_id)
        if battle is None:
            return False
        if battle.is_private and (space_id is None or space_id != battle.space_id):
            logger.info("private battle join rejected", battle_id=battle.battle_id, space_id=space_id)
            return False
        if not await self._store.add_participant(battle.battle_id, user_id):
            return False
        logger.info("player joined", battle_id=battle.battle_id, user_id=user_id, channel_id=channel_id)
        latest = await self._store.find_by_id(battle.battle_id)
        count = len(latest.participants) if latest is not None else len(battle.participants) + 1
        await self._send(channel_id, narration.joined_message(user_id, count))
        return True

    # --- funding ---

    async def recheck_approval(self, battle_id: str, admin_id: str) -> bool:
        """Move pending_approval to pending_tip once the admin's allowance covers the pool."""
        battle = await self._store.find_by_id(battle_id)
        if battle is None or battle.status != BattleStatus.PENDING_APPROVAL or battle.admin_id != admin_id:
            return False
        try:
            approved = await self._ledger.check_approval(admin_id, self._bot_address, battle.reward_amount or 0)
        except (UpstreamUnavailableError, OSError):
            logger.warning("approval check failed", battle_id=battle_id, exc_info=True)
            return False
        if not approved:
            await self._send(battle.channel_id, narration.approval_required_message(battle, self._bot_address))
            return False

        updated = await self._store.mutate_battle(
            battle_id,
            lambda b: b.evolve(status=BattleStatus.PENDING_TIP) if b.status == BattleStatus.PENDING_APPROVAL else None,
        )
        if updated is None:
            return False
        await self._send(updated.channel_id, narration.approval_confirmed_message(), thread_id=updated.thread_id)
        return True

    async def fund(self, admin_id: str, amount: int, battle_id: str) -> bool:
        """
        Launch a battle from a qualifying tip.

        The tip must come from the admin of record while the battle is pending_tip,
        and its amount must fall inside the oracle's window. If the oracle cannot
        answer the tip is rejected. With fewer than two participants the battle
        goes back to collecting and the tip is void.
        """
        battle = await self._store.find_by_id(battle_id)
        if battle is None or battle.status != BattleStatus.PENDING_TIP or battle.admin_id != admin_id:
            return False

        try:
            tip_range = await self._oracle.get_tip_amount_range()
        except (UpstreamUnavailableError, OSError):
            logger.warning("tip rejected, price unavailable", battle_id=battle_id, amount=str(amount), exc_info=True)
            return False
        if not tip_range.accepts(amount):
            logger.info(
                "tip rejected, amount out of range",
                battle_id=battle_id,
                amount=str(amount),
                min=str(tip_range.min),
                max=str(tip_range.max),
            )
            return False

        if len(battle.participants) < MIN_PARTICIPANTS:
            await self._store.mutate_battle(
                battle_id,
                lambda b: b.evolve(status=BattleStatus.COLLECTING) if b.status == BattleStatus.PENDING_TIP else None,
            )
            logger.info("tip void, not enough participants", battle_id=battle_id, participants=len(battle.participants))
            await self._send(battle.channel_id, narration.not_enough_players_message(), thread_id=battle.thread_id)
            return False

        if battle.has_reward:
            try:
                approved = await self._ledger.check_approval(admin_id, self._bot_address, battle.reward_amount or 0)
            except (UpstreamUnavailableError, OSError):
                logger.warning("tip rejected, approval check failed", battle_id=battle_id, exc_info=True)
                return False
            if not approved:
                await self._store.mutate_battle(
                    battle_id,
                    lambda b: b.evolve(status=BattleStatus.PENDING_APPROVAL) if b.status == BattleStatus.PENDING_TIP else None,
                )
                await self._send(battle.channel_id, narration.approval_required_message(battle, self._bot_address))
                return False

        def launch(latest: Battle) -> Battle | None:
            if latest.status != BattleStatus.PENDING_TIP or len(latest.participants) < MIN_PARTICIPANTS:
                return None
            return latest.evolve(
                status=BattleStatus.ACTIVE,
                tip_received=True,
                tip_amount=amount,
                started_at=utc_now(),
            )

        launched = await self._store.mutate_battle(battle_id, launch)
        if launched is None:
            return False
        self._timeouts.cancel(battle_id)
        logger.info("battle launched", battle_id=battle_id, participants=len(launched.participants), tip_amount=str(amount))
        await self._broadcast(launched, narration.start_message(launched))
        self._runner.start(battle_id)
        return True

    # --- cancellation ---

    async def cancel(self, user_id: str, battle_id: str) -> bool:
        """Cancel a battle that has not launched. Only its admin may do this."""
        cancelled = await self._finish_cancelled(battle_id, admin_id=user_id)
        if cancelled is None:
            return False
        self._timeouts.cancel(battle_id)
        logger.info("battle cancelled", battle_id=battle_id, cancelled_by=user_id)
        await self._send(cancelled.channel_id, narration.cancelled_message(cancelled), thread_id=cancelled.thread_id)
        return True

    async def _finish_cancelled(self, battle_id: str, admin_id: str | None = None) -> Battle | None:
        def finish(latest: Battle) -> Battle | None:
            if not latest.is_joinable:
                return None
            if admin_id is not None and latest.admin_id != admin_id:
                return None
            return latest.evolve(
                status=BattleStatus.FINISHED,
                cancelled=True,
                winners=(),
                ended_at=utc_now(),
            )

        return await self._store.mutate_battle(battle_id, finish)

    async def _on_join_timeout(self, battle_id: str) -> None:
        expired = await self._finish_cancelled(battle_id)
        if expired is None:
            return
        logger.info("public battle expired before launch", battle_id=battle_id)
        await self._broadcast(expired, narration.cancelled_message(expired, expired=True))

    # --- queries and lifecycle ---

    async def get_leaderboard(self, metric: StatName = StatName.WINS, limit: int = 10) -> list[PlayerStats]:
        return await self._store.get_leaderboard(metric, limit)

    async def get_player_stats(self, user_id: str) -> PlayerStats:
        return await self._store.get_player_stats(user_id)

    async def recover(self) -> None:
        """Resume work persisted by a previous process.

        Active battles get a new runner task. Public battles that never launched
        get the remainder of their join timeout.
        """
        now = utc_now()
        for battle in await self._store.active_battles():
            if battle.status == BattleStatus.ACTIVE:
                logger.info("resuming battle runner", battle_id=battle.battle_id, round=battle.current_round)
                self._runner.start(battle.battle_id)
            elif not battle.is_private and battle.is_joinable:
                elapsed = (now - battle.created_at).total_seconds()
                self._timeouts.schedule(battle.battle_id, self._join_timeout_seconds - elapsed)

    async def shutdown(self) -> None:
        self._timeouts.cancel_all()
        await self._runner.shutdown()
