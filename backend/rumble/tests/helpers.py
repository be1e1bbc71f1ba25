import asyncio
from collections.abc import Sequence

from rumble.logic.enums import BattleStatus, Visibility
from rumble.logic.models import Battle

BOT_ADDRESS = "0xb07"
ADMIN = "admin"
SPACE = "space-1"
CHANNEL = "channel-1"
TIP = 1000  # inside the default MockPriceOracle window


def create_battle(  # noqa: PLR0913
    battle_id: str = "battle-1",
    *,
    participants: Sequence[str] = (),
    eliminated: Sequence[str] = (),
    winners: Sequence[str] = (),
    status: BattleStatus = BattleStatus.ACTIVE,
    visibility: Visibility = Visibility.PRIVATE,
    reward_amount: int | None = None,
    is_test: bool = False,
    space_id: str = SPACE,
    channel_id: str = CHANNEL,
    admin_id: str = ADMIN,
    thread_id: str | None = None,
) -> Battle:
    """Create a Battle with sensible defaults for testing."""
    return Battle(
        battle_id=battle_id,
        space_id=space_id,
        channel_id=channel_id,
        admin_id=admin_id,
        visibility=visibility,
        status=status,
        participants=tuple(participants),
        eliminated=tuple(eliminated),
        winners=tuple(winners),
        reward_amount=reward_amount,
        is_test=is_test,
        thread_id=thread_id,
    )


async def wait_for_runner(runner, battle_id: str, timeout: float = 5.0) -> None:
    """Wait until the runner task for battle_id has finished."""

    async def poll() -> None:
        while runner.is_running(battle_id):
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout)
