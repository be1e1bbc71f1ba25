"""Plain-text messages posted to battle channels."""

from collections.abc import Sequence

from rumble.logic.enums import EventKind
from rumble.logic.models import Battle, Payout
from rumble.logic.settlement import REWARD_SHARES
from rumble.logic.simulator import RoundResult

PLACE_LABELS = ("1st", "2nd", "3rd")
GENERIC_FAILURE = "An error occurred during the battle."
PAYOUT_FAILURE = "Error distributing rewards. Please contact an admin."
NO_WINNER = "The battle ended with no clear winner."


def _join_names(players: Sequence[str]) -> str:
    return ", ".join(players)


def announcement_message(battle: Battle) -> str:
    scope = "Public battle: any community can join." if not battle.is_private else "Private battle: only this community can join."
    lines = ["BATTLE ROYALE INITIATED!", scope, "React with the crossed swords to join the battle!"]
    if battle.has_reward:
        lines.append(f"Reward pool: {battle.reward_amount}")
    lines.append("Once ready, the admin tips the bot to launch the battle.")
    return "\n\n".join(lines)


def approval_required_message(battle: Battle, spender: str) -> str:
    return (
        f"Token approval required: allow {spender} to spend {battle.reward_amount} "
        "before launching the battle."
    )


def approval_confirmed_message() -> str:
    return "Token approval confirmed! Tip the bot to launch the battle."


def joined_message(user_id: str, participant_count: int) -> str:
    return f"{user_id} has joined the battle! ({participant_count} participants)"


def not_enough_players_message() -> str:
    return "Need at least 2 participants to start the battle!"


def start_message(battle: Battle) -> str:
    text = f"BATTLE STARTING! {len(battle.participants)} fighters are entering the arena!"
    if battle.has_reward:
        text += f"\nReward pool: {battle.reward_amount}"
    return text


def cancelled_message(battle: Battle, *, expired: bool = False) -> str:
    reason = "No one launched it in time." if expired else "The battle has been cancelled by the admin."
    count = len(battle.participants)
    text = f"BATTLE CANCELLED\n\n{reason}"
    if count:
        text += f"\n{count} participant{'s were' if count > 1 else ' was'} removed from the battle."
    if battle.has_reward:
        text += f"\nReward pool of {battle.reward_amount} was not distributed."
    return text


def round_message(round_number: int, result: RoundResult) -> str:
    """
    One message per round: header, events in order, then summaries.

    Mass events list their victims inline, so the eliminated summary is left out.
    """
    parts = [f"Round {round_number}"]
    for event in result.events:
        if event.kind == EventKind.MASS:
            victims = "\n".join(event.actors)
            parts.append(f"MASS EVENT\n\n{event.text}:\n{victims}")
        else:
            parts.append(event.text)

    revived = result.revived_this_round
    if len(revived) == 1:
        parts.append(f"{revived[0]} has been revived and rejoined the battle!")
    elif revived:
        parts.append(f"Revived: {_join_names(revived)}")

    eliminated = result.eliminated_this_round
    if eliminated and not result.is_mass_event:
        if len(eliminated) == 1:
            parts.append(f"{eliminated[0]} has been eliminated!")
        else:
            parts.append(f"Eliminated: {_join_names(eliminated)}")
    return "\n\n".join(parts)


def winners_message(
    winners: Sequence[str],
    payouts: Sequence[Payout] = (),
    *,
    transaction_hash: str | None = None,
    is_test: bool = False,
) -> str:
    refund = is_test and bool(payouts)
    if not winners and not refund:
        return NO_WINNER
    lines = ["BATTLE ROYALE COMPLETE!" if winners else NO_WINNER]
    if refund:
        lines.append(f"TEST BATTLE: all rewards sent to admin: {payouts[0].amount}")
    elif payouts:
        amounts = {p.recipient: p.amount for p in payouts}
        for label, share, winner in zip(PLACE_LABELS, REWARD_SHARES, winners, strict=False):
            lines.append(f"{label}: {winner} - {amounts.get(winner, 0)} ({share}%)")
    elif len(winners) == 1:
        lines.append(f"{winners[0]} is the winner!")
    else:
        lines.extend(f"{label}: {winner}" for label, winner in zip(PLACE_LABELS, winners, strict=False))
    if transaction_hash:
        lines.append(f"Rewards distributed! Transaction: {transaction_hash}")
    lines.append("Thanks to all participants for an epic battle!")
    return "\n".join(lines)


def payout_failed_message(winners: Sequence[str]) -> str:
    return f"{PAYOUT_FAILURE}\n\nWinners: {_join_names(winners)}"
