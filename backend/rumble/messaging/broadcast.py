"""Fan-out of battle narration to the channels that follow a battle."""

import structlog

from rumble.logic.models import Battle, ChannelRef
from rumble.messaging.protocol import Messenger

logger = structlog.get_logger()


def battle_recipients(battle: Battle, public_channels: list[ChannelRef]) -> list[tuple[str, str | None]]:
    """
    Channels (with optional thread) that receive a battle's messages.

    A private battle only talks to its own channel, inside the battle thread
    when one exists. A public battle reaches every registered public channel;
    only the origin channel uses the thread. The origin channel is always
    included even if it was never registered.
    """
    origin = (battle.channel_id, battle.thread_id)
    if battle.is_private:
        return [origin]
    recipients = [origin]
    seen = {battle.channel_id}
    for channel in public_channels:
        if channel.channel_id not in seen:
            seen.add(channel.channel_id)
            recipients.append((channel.channel_id, None))
    return recipients


async def broadcast_to_battle(
    messenger: Messenger,
    battle: Battle,
    text: str,
    public_channels: list[ChannelRef],
    *,
    use_thread: bool = True,
) -> int:
    """Send text to every recipient of the battle. Returns how many sends succeeded.

    A failing channel is logged and skipped; it never stops the remaining sends.
    """
    delivered = 0
    for channel_id, thread_id in battle_recipients(battle, public_channels):
        try:
            await messenger.send_message(channel_id, text, thread_id=thread_id if use_thread else None)
        except Exception:
            logger.exception("broadcast failed", battle_id=battle.battle_id, channel_id=channel_id)
            continue
        delivered += 1
    return delivered
