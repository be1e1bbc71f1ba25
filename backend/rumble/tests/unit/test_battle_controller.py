import asyncio

import pytest

from rumble.logic.enums import BattleStatus, StatName, Visibility
from rumble.logic.exceptions import BattleSlotOccupiedError
from rumble.session.controller import JOIN_SYMBOL, BattleController, is_join_symbol
from rumble.session.runner import BattleRunner
from rumble.tests.helpers import ADMIN, BOT_ADDRESS, CHANNEL, SPACE, TIP, wait_for_runner


async def battle_with_players(controller, players, **kwargs):
    battle = await controller.create_battle(ADMIN, SPACE, CHANNEL, **kwargs)
    for player in players:
        assert await controller.join(player, battle.battle_id)
    return battle


class TestJoinSymbol:
    @pytest.mark.parametrize("symbol", ["\u2694\ufe0f", "\u2694", "\u2694\ufe0e", "crossed_swords", " CROSSED_SWORDS "])
    def test_accepted(self, symbol):
        assert is_join_symbol(symbol)

    @pytest.mark.parametrize("symbol", ["", "\U0001f44d", "swords", ":crossed_swords:x"])
    def test_rejected(self, symbol):
        assert not is_join_symbol(symbol)


class TestCreateBattle:
    async def test_private_battle_is_announced(self, controller, messenger):
        battle = await controller.create_battle(ADMIN, SPACE, CHANNEL)

        assert battle.status == BattleStatus.PENDING_TIP
        assert battle.announcement_id == "msg-1"
        assert battle.thread_id == "msg-1"
        [announcement] = messenger.sent
        assert announcement.channel_id == CHANNEL
        assert "BATTLE ROYALE INITIATED!" in announcement.text
        assert "Private battle" in announcement.text
        assert messenger.reactions == [(CHANNEL, "msg-1", JOIN_SYMBOL)]
        assert not controller.timeouts.has_timer(battle.battle_id)

    async def test_public_battle_registers_channel_and_timer(self, controller, store):
        battle = await controller.create_battle(ADMIN, SPACE, CHANNEL, visibility=Visibility.PUBLIC)

        assert [c.channel_id for c in await store.public_channels()] == [CHANNEL]
        assert controller.timeouts.has_timer(battle.battle_id)

    async def test_occupied_slot_raises(self, controller):
        await controller.create_battle(ADMIN, SPACE, CHANNEL)

        with pytest.raises(BattleSlotOccupiedError):
            await controller.create_battle(ADMIN, SPACE, CHANNEL)

    async def test_reward_without_allowance_needs_approval(self, controller, ledger, messenger):
        ledger.allowances.clear()

        battle = await controller.create_battle(ADMIN, SPACE, CHANNEL, reward_amount=1000)

        assert battle.status == BattleStatus.PENDING_APPROVAL
        assert ledger.approval_checks == [(ADMIN, BOT_ADDRESS, 1000)]
        assert "Token approval required" in messenger.sent[0].text
        assert BOT_ADDRESS in messenger.sent[0].text

    async def test_ledger_failure_keeps_battle_collecting(self, controller, ledger, messenger):
        ledger.fail_approval = True

        battle = await controller.create_battle(ADMIN, SPACE, CHANNEL, reward_amount=1000)

        assert battle.status == BattleStatus.COLLECTING
        assert messenger.sent == []

        ledger.fail_approval = False
        announced = await controller.announce(battle.battle_id)
        assert announced.status == BattleStatus.PENDING_TIP

    async def test_announce_only_from_collecting(self, controller):
        battle = await controller.create_battle(ADMIN, SPACE, CHANNEL)

        assert await controller.announce(battle.battle_id) is None

    async def test_undelivered_announcement_still_opens_battle(self, controller, messenger):
        messenger.fail_channels.add(CHANNEL)

        battle = await controller.create_battle(ADMIN, SPACE, CHANNEL)

        assert battle.status == BattleStatus.PENDING_TIP
        assert battle.thread_id is None


class TestApproval:
    async def test_recheck_moves_to_pending_tip(self, controller, ledger, messenger, store):
        ledger.allowances.clear()
        battle = await controller.create_battle(ADMIN, SPACE, CHANNEL, reward_amount=1000)

        assert not await controller.recheck_approval(battle.battle_id, ADMIN)
        assert "Token approval required" in messenger.sent[-1].text

        ledger.allowances[ADMIN] = 1000
        assert await controller.recheck_approval(battle.battle_id, ADMIN)

        assert (await store.find_by_id(battle.battle_id)).status == BattleStatus.PENDING_TIP
        assert messenger.sent[-1].text.startswith("Token approval confirmed")
        assert messenger.sent[-1].thread_id == battle.thread_id

    async def test_recheck_only_by_admin(self, controller, ledger):
        ledger.allowances.clear()
        battle = await controller.create_battle(ADMIN, SPACE, CHANNEL, reward_amount=1000)
        ledger.allowances[ADMIN] = 1000

        assert not await controller.recheck_approval(battle.battle_id, "intruder")

    async def test_recheck_ledger_failure(self, controller, ledger, store):
        ledger.allowances.clear()
        battle = await controller.create_battle(ADMIN, SPACE, CHANNEL, reward_amount=1000)
        ledger.fail_approval = True

        assert not await controller.recheck_approval(battle.battle_id, ADMIN)
        assert (await store.find_by_id(battle.battle_id)).status == BattleStatus.PENDING_APPROVAL


class TestJoining:
    async def test_join_once(self, controller, store):
        battle = await controller.create_battle(ADMIN, SPACE, CHANNEL)

        assert await controller.join("p1", battle.battle_id)
        assert not await controller.join("p1", battle.battle_id)
        assert (await store.find_by_id(battle.battle_id)).participants == ("p1",)

    async def test_wrong_symbol_ignored(self, controller, store):
        battle = await controller.create_battle(ADMIN, SPACE, CHANNEL)

        assert not await controller.join("p1", battle.battle_id, "\U0001f44d")
        assert (await store.find_by_id(battle.battle_id)).participants == ()

    async def test_private_battle_rejects_other_community(self, controller):
        battle = await controller.create_battle(ADMIN, SPACE, CHANNEL)

        assert not await controller.join("p1", battle.battle_id, space_id="space-2")
        assert not await controller.handle_reaction("p1", JOIN_SYMBOL, CHANNEL, "space-2")
        assert not await controller.handle_reaction("p1", JOIN_SYMBOL, CHANNEL, None)

    async def test_reaction_join_is_confirmed(self, controller, messenger):
        await controller.create_battle(ADMIN, SPACE, CHANNEL)

        assert await controller.handle_reaction("p1", "crossed_swords", CHANNEL, SPACE)

        assert messenger.sent[-1].channel_id == CHANNEL
        assert messenger.sent[-1].text == "p1 has joined the battle! (1 participants)"

    async def test_duplicate_reaction_not_confirmed(self, controller, messenger):
        await controller.create_battle(ADMIN, SPACE, CHANNEL)
        await controller.handle_reaction("p1", JOIN_SYMBOL, CHANNEL, SPACE)
        sent = len(messenger.sent)

        assert not await controller.handle_reaction("p1", JOIN_SYMBOL, CHANNEL, SPACE)
        assert len(messenger.sent) == sent

    async def test_public_battle_joinable_from_any_community(self, controller, store):
        battle = await controller.create_battle(ADMIN, SPACE, CHANNEL, visibility=Visibility.PUBLIC)

        assert await controller.handle_reaction("p9", JOIN_SYMBOL, "channel-9", "space-9")
        assert (await store.find_by_id(battle.battle_id)).participants == ("p9",)

    async def test_reaction_in_community_channel_joins_private_battle(self, controller, store):
        public = await controller.create_battle(ADMIN, "space-9", "channel-9", visibility=Visibility.PUBLIC)
        private = await controller.create_battle(ADMIN, SPACE, CHANNEL)

        assert await controller.handle_reaction("p1", JOIN_SYMBOL, CHANNEL, SPACE)

        assert (await store.find_by_id(private.battle_id)).participants == ("p1",)
        assert (await store.find_by_id(public.battle_id)).participants == ()

    async def test_private_battle_joinable_while_public_battle_runs(self, controller, store):
        public = await controller.create_battle(ADMIN, "space-9", "channel-9", visibility=Visibility.PUBLIC)
        await store.set_status(public.battle_id, BattleStatus.ACTIVE)
        private = await controller.create_battle(ADMIN, SPACE, CHANNEL)

        assert await controller.handle_reaction("p1", JOIN_SYMBOL, CHANNEL, SPACE)
        assert (await store.find_by_id(private.battle_id)).participants == ("p1",)

    async def test_reaction_on_public_announcement_joins_public_battle(self, controller, store):
        public = await controller.create_battle(ADMIN, "space-9", CHANNEL, visibility=Visibility.PUBLIC)
        private = await controller.create_battle(ADMIN, SPACE, CHANNEL)

        assert await controller.handle_reaction("p1", JOIN_SYMBOL, CHANNEL, SPACE, message_id=public.announcement_id)

        assert (await store.find_by_id(public.battle_id)).participants == ("p1",)
        assert (await store.find_by_id(private.battle_id)).participants == ()

    async def test_reaction_without_battle(self, controller):
        assert not await controller.handle_reaction("p1", JOIN_SYMBOL, CHANNEL, SPACE)


class TestFunding:
    async def test_tip_above_window_rejected(self, controller, store):
        battle = await battle_with_players(controller, ["p1", "p2"])

        assert not await controller.fund(ADMIN, 1650, battle.battle_id)
        assert (await store.find_by_id(battle.battle_id)).status == BattleStatus.PENDING_TIP

    async def test_tip_below_window_rejected(self, controller, store):
        battle = await battle_with_players(controller, ["p1", "p2"])

        assert not await controller.fund(ADMIN, 899, battle.battle_id)
        assert (await store.find_by_id(battle.battle_id)).status == BattleStatus.PENDING_TIP

    async def test_tip_from_someone_else_rejected(self, controller, store):
        battle = await battle_with_players(controller, ["p1", "p2"])

        assert not await controller.fund("p1", TIP, battle.battle_id)
        assert (await store.find_by_id(battle.battle_id)).status == BattleStatus.PENDING_TIP

    async def test_tip_rejected_without_price(self, controller, oracle, store):
        battle = await battle_with_players(controller, ["p1", "p2"])
        oracle.unavailable = True

        assert not await controller.fund(ADMIN, TIP, battle.battle_id)
        assert (await store.find_by_id(battle.battle_id)).status == BattleStatus.PENDING_TIP

    async def test_tip_rejected_when_oracle_connection_fails(self, controller, oracle, store, monkeypatch):
        battle = await battle_with_players(controller, ["p1", "p2"])

        async def unreachable():
            raise ConnectionResetError("price feed dropped")

        monkeypatch.setattr(oracle, "get_tip_amount_range", unreachable)

        assert not await controller.fund(ADMIN, TIP, battle.battle_id)
        assert (await store.find_by_id(battle.battle_id)).status == BattleStatus.PENDING_TIP

    async def test_tip_rejected_when_ledger_connection_fails(self, controller, ledger, store, monkeypatch):
        battle = await battle_with_players(controller, ["p1", "p2"], reward_amount=1000)

        async def unreachable(*_args):
            raise TimeoutError("rpc timed out")

        monkeypatch.setattr(ledger, "check_approval", unreachable)

        assert not await controller.fund(ADMIN, TIP, battle.battle_id)
        assert (await store.find_by_id(battle.battle_id)).status == BattleStatus.PENDING_TIP

    async def test_not_enough_players_reverts_to_collecting(self, controller, store, messenger):
        battle = await battle_with_players(controller, ["p1"])

        assert not await controller.fund(ADMIN, TIP, battle.battle_id)

        stored = await store.find_by_id(battle.battle_id)
        assert stored.status == BattleStatus.COLLECTING
        assert not stored.tip_received
        assert messenger.sent[-1].text == "Need at least 2 participants to start the battle!"

    async def test_revoked_allowance_goes_back_to_approval(self, controller, ledger, store):
        battle = await battle_with_players(controller, ["p1", "p2"], reward_amount=1000)
        ledger.allowances[ADMIN] = 0

        assert not await controller.fund(ADMIN, TIP, battle.battle_id)
        assert (await store.find_by_id(battle.battle_id)).status == BattleStatus.PENDING_APPROVAL

    async def test_qualifying_tip_launches(self, controller, store, messenger, runner):
        battle = await battle_with_players(controller, ["p1", "p2"])

        assert await controller.fund(ADMIN, TIP, battle.battle_id)

        launched = await store.find_by_id(battle.battle_id)
        assert launched.status == BattleStatus.ACTIVE
        assert launched.tip_received
        assert launched.tip_amount == TIP
        assert launched.started_at is not None
        assert any("BATTLE STARTING! 2 fighters" in text for text in messenger.texts(CHANNEL))
        assert runner.is_running(battle.battle_id)

        await wait_for_runner(runner, battle.battle_id)
        [finished] = await store.history()
        assert finished.battle_id == battle.battle_id
        assert finished.winners

    async def test_second_tip_is_ignored(self, controller, runner):
        battle = await battle_with_players(controller, ["p1", "p2"])
        assert await controller.fund(ADMIN, TIP, battle.battle_id)

        assert not await controller.fund(ADMIN, TIP, battle.battle_id)
        await wait_for_runner(runner, battle.battle_id)

    async def test_launch_cancels_join_timeout(self, controller, runner):
        battle = await battle_with_players(controller, ["p1", "p2"], visibility=Visibility.PUBLIC)
        assert controller.timeouts.has_timer(battle.battle_id)

        assert await controller.fund(ADMIN, TIP, battle.battle_id)

        assert not controller.timeouts.has_timer(battle.battle_id)
        await wait_for_runner(runner, battle.battle_id)

    async def test_join_closed_after_launch(self, controller, runner):
        battle = await battle_with_players(controller, ["p1", "p2"])
        await controller.fund(ADMIN, TIP, battle.battle_id)

        assert not await controller.join("late", battle.battle_id)
        await wait_for_runner(runner, battle.battle_id)


class TestCancel:
    async def test_admin_cancels_collecting_battle(self, controller, store, messenger):
        battle = await store.create_battle(Visibility.PRIVATE, SPACE, CHANNEL, ADMIN)
        for player in ("p1", "p2", "p3"):
            await controller.join(player, battle.battle_id)

        assert await controller.cancel(ADMIN, battle.battle_id)

        assert await store.find_by_id(battle.battle_id) is None
        [archived] = await store.history()
        assert archived.status == BattleStatus.FINISHED
        assert archived.cancelled
        assert archived.winners == ()
        for stat in StatName:
            assert await store.get_leaderboard(stat) == []
        assert "cancelled by the admin" in messenger.sent[-1].text
        assert "3 participants were removed" in messenger.sent[-1].text

    async def test_only_admin_may_cancel(self, controller, store):
        battle = await controller.create_battle(ADMIN, SPACE, CHANNEL)

        assert not await controller.cancel("p1", battle.battle_id)
        assert (await store.find_by_id(battle.battle_id)).status == BattleStatus.PENDING_TIP

    async def test_cancel_twice(self, controller):
        battle = await controller.create_battle(ADMIN, SPACE, CHANNEL)

        assert await controller.cancel(ADMIN, battle.battle_id)
        assert not await controller.cancel(ADMIN, battle.battle_id)

    async def test_active_battle_cannot_be_cancelled(self, controller, runner):
        battle = await battle_with_players(controller, ["p1", "p2"])
        await controller.fund(ADMIN, TIP, battle.battle_id)

        assert not await controller.cancel(ADMIN, battle.battle_id)
        await wait_for_runner(runner, battle.battle_id)

    async def test_cancel_stops_join_timeout(self, controller):
        battle = await controller.create_battle(ADMIN, SPACE, CHANNEL, visibility=Visibility.PUBLIC)

        assert await controller.cancel(ADMIN, battle.battle_id)
        assert not controller.timeouts.has_timer(battle.battle_id)


class TestJoinTimeout:
    @pytest.fixture
    async def quick_controller(self, store, messenger, admins, oracle, ledger, runner):
        controller = BattleController(
            store,
            messenger,
            admins,
            oracle,
            ledger,
            runner,
            bot_address=BOT_ADDRESS,
            public_join_timeout_seconds=0.05,
        )
        yield controller
        await controller.shutdown()

    async def test_unlaunched_public_battle_expires(self, quick_controller, store, messenger):
        battle = await quick_controller.create_battle(ADMIN, SPACE, CHANNEL, visibility=Visibility.PUBLIC)
        await quick_controller.join("p1", battle.battle_id)

        await asyncio.sleep(0.2)

        assert await store.find_by_id(battle.battle_id) is None
        [archived] = await store.history()
        assert archived.cancelled
        assert "No one launched it in time." in messenger.sent[-1].text
        assert (await store.get_player_stats("p1")).battles == 0

    async def test_slot_is_free_after_expiry(self, quick_controller):
        await quick_controller.create_battle(ADMIN, SPACE, CHANNEL, visibility=Visibility.PUBLIC)
        await asyncio.sleep(0.2)

        again = await quick_controller.create_battle(ADMIN, SPACE, CHANNEL, visibility=Visibility.PUBLIC)
        assert again.status == BattleStatus.PENDING_TIP


class TestPermissions:
    async def test_admin_can_launch(self, controller):
        assert await controller.can_launch(ADMIN, SPACE)
        assert not await controller.can_launch(ADMIN, "space-2")

    async def test_granted_user_can_launch(self, controller):
        assert not await controller.can_launch("u1", SPACE)

        assert await controller.grant_permission(ADMIN, SPACE, "u1")

        assert await controller.can_launch("u1", SPACE)
        assert await controller.list_permissions(ADMIN, SPACE) == ["u1"]

    async def test_revoke(self, controller):
        await controller.grant_permission(ADMIN, SPACE, "u1")

        assert await controller.revoke_permission(ADMIN, SPACE, "u1")
        assert not await controller.can_launch("u1", SPACE)

    async def test_only_admins_manage_permissions(self, controller):
        await controller.grant_permission(ADMIN, SPACE, "u1")

        assert not await controller.grant_permission("u1", SPACE, "u2")
        assert not await controller.revoke_permission("u1", SPACE, "u1")
        assert await controller.list_permissions("u1", SPACE) is None


class TestRecover:
    async def test_resumes_active_battles(self, controller, store, runner):
        battle = await store.create_battle(Visibility.PRIVATE, SPACE, CHANNEL, ADMIN)
        for player in ("p1", "p2", "p3"):
            await store.add_participant(battle.battle_id, player)
        await store.set_status(battle.battle_id, BattleStatus.ACTIVE)

        await controller.recover()

        assert runner.is_running(battle.battle_id)
        await wait_for_runner(runner, battle.battle_id)
        [finished] = await store.history()
        assert finished.is_finished
        assert (await controller.get_player_stats("p1")).battles == 1

    async def test_reschedules_public_join_timeout(self, controller, store):
        battle = await store.create_battle(Visibility.PUBLIC, SPACE, CHANNEL, ADMIN)

        await controller.recover()

        assert controller.timeouts.has_timer(battle.battle_id)
        assert not controller.runner.is_running(battle.battle_id)

    async def test_shutdown_stops_runners(self, store, messenger, admins, oracle, ledger):
        slow_runner = BattleRunner(store, messenger, ledger, tick_interval=60)
        controller = BattleController(store, messenger, admins, oracle, ledger, slow_runner, bot_address=BOT_ADDRESS)
        battle = await battle_with_players(controller, ["p1", "p2"])
        await controller.fund(ADMIN, TIP, battle.battle_id)
        assert slow_runner.is_running(battle.battle_id)

        await controller.shutdown()

        assert not slow_runner.is_running(battle.battle_id)
        assert (await store.find_by_id(battle.battle_id)).status == BattleStatus.ACTIVE
