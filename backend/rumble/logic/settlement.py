"""
Winner ranking and reward splitting for finished battles.
"""

from collections.abc import Sequence

from rumble.logic.models import MAX_WINNERS, Payout

# share of the pool for 1st, 2nd and 3rd place, in percent
REWARD_SHARES: tuple[int, ...] = (60, 25, 15)


def rank_winners(remaining: Sequence[str], runner_up: Sequence[str]) -> tuple[str, ...]:
    """
    Build the final [1st, 2nd, 3rd] podium.

    The last player standing is 1st. The runner-up buffer is kept as [3rd, 2nd]
    during the battle, so it is reversed behind them. With nobody left standing
    there are no winners at all.
    """
    if not remaining:
        return ()
    podium = [remaining[0]]
    podium.extend(p for p in reversed(runner_up) if p not in podium)
    return tuple(podium[:MAX_WINNERS])


def split_rewards(total: int | None, winners: Sequence[str], admin_id: str, *, is_test: bool = False) -> list[Payout]:
    """
    Split a reward pool across the podium with floor division.

    Rounding leftovers stay with the admin (they are never transferred). In
    test mode the whole pool goes back to the admin, with or without winners.
    """
    if not total or total <= 0:
        return []
    if is_test:
        return [Payout(recipient=admin_id, amount=total)]
    if not winners:
        return []
    payouts = []
    for winner, share in zip(winners[:MAX_WINNERS], REWARD_SHARES, strict=False):
        amount = total * share // 100
        if amount > 0:
            payouts.append(Payout(recipient=winner, amount=amount))
    return payouts
