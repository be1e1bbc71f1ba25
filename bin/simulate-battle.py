"""Simulate a battle offline and print its narration.

Runs the real store, runner and round simulator against in-memory storage,
a console messenger and a dry-run ledger. A seed replays a battle exactly.

Usage:
    uv run python bin/simulate-battle.py
    uv run python bin/simulate-battle.py --players 12 --theme christmas
    uv run python bin/simulate-battle.py --seed <64 hex chars> --reward 1000
    uv run python bin/simulate-battle.py --quiet -n 200
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import statistics
import sys
from collections import Counter
from collections.abc import Sequence

from rumble.logic.enums import BattleStatus, Visibility
from rumble.logic.events import available_themes
from rumble.logic.models import Battle, Payout
from rumble.logic.rng import create_battle_rng, generate_seed, validate_seed_hex
from rumble.messaging.protocol import Messenger, TokenLedger
from rumble.session.runner import BattleRunner
from rumble.store.repository import BattleStore
from rumble.store.storage import InMemoryDocumentStorage
from shared.logging import setup_logging

SPACE_ID = "simulation"
CHANNEL_ID = "console"
ADMIN_ID = "admin"


class _ConsoleMessenger(Messenger):
    def __init__(self, *, quiet: bool) -> None:
        self._quiet = quiet
        self.count = 0

    async def send_message(self, channel_id: str, text: str, *, thread_id: str | None = None) -> str:
        self.count += 1
        if not self._quiet:
            print(text)
            print("-" * 60)
        return f"console-{self.count}"

    async def send_reaction(self, channel_id: str, event_id: str, symbol: str) -> None:
        return None


class _DryRunLedger(TokenLedger):
    async def check_approval(self, owner: str, spender: str, required_amount: int) -> bool:
        return True

    async def execute_batch_transfer(self, owner: str, transfers: Sequence[Payout]) -> str:
        for transfer in transfers:
            print(f"  would transfer {transfer.amount} to {transfer.recipient}")
        return "dry-run"


async def simulate(players: int, seed_hex: str, theme: str, reward: int | None, *, quiet: bool) -> Battle:
    """Play one battle to completion and return its archived record."""
    store = BattleStore(InMemoryDocumentStorage())
    runner = BattleRunner(store, _ConsoleMessenger(quiet=quiet), _DryRunLedger(), tick_interval=0)

    battle = await store.create_battle(Visibility.PRIVATE, SPACE_ID, CHANNEL_ID, ADMIN_ID, reward_amount=reward, theme=theme)
    for index in range(1, players + 1):
        await store.add_participant(battle.battle_id, f"player{index}")
    await store.set_status(battle.battle_id, BattleStatus.ACTIVE)

    settled = await runner.run(battle.battle_id, create_battle_rng(seed_hex))
    if settled is None:
        raise RuntimeError(f"battle {battle.battle_id} did not settle")
    return settled


def _print_summary(results: list[Battle]) -> None:
    rounds = [b.current_round for b in results]
    champions = Counter(b.winners[0] for b in results if b.winners)

    print("=" * 60)
    print("SUMMARY")
    print("=" * 60)
    print(f"Battles: {len(results)}")
    print(f"Median rounds: {statistics.median(rounds)}")
    print(f"Min rounds: {min(rounds)}")
    print(f"Max rounds: {max(rounds)}")
    print(f"Podiums with three places: {sum(1 for b in results if len(b.winners) == 3)}")
    print("Most frequent champions:")
    for player, wins in champions.most_common(5):
        print(f"  {player}: {wins}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate a battle royale offline")
    parser.add_argument("-p", "--players", type=int, default=6, help="number of participants (default: 6)")
    parser.add_argument("--seed", help="64-char hex seed (default: random)")
    parser.add_argument("--theme", default="default", choices=available_themes(), help="event theme")
    parser.add_argument("--reward", type=int, default=None, help="reward pool in token units")
    parser.add_argument("-n", "--iterations", type=int, default=1, help="number of battles (default: 1)")
    parser.add_argument("-q", "--quiet", action="store_true", help="only print the summary")
    args = parser.parse_args()

    if args.players < 2:
        print("A battle needs at least 2 players", file=sys.stderr)
        sys.exit(1)
    if args.iterations < 1:
        print("Iterations must be at least 1", file=sys.stderr)
        sys.exit(1)
    if args.seed is not None:
        try:
            validate_seed_hex(args.seed)
        except ValueError as exc:
            print(f"Invalid seed: {exc}", file=sys.stderr)
            sys.exit(1)

    # Keep the console for narration
    setup_logging(level=logging.WARNING)

    results = []
    for iteration in range(args.iterations):
        # a fixed seed replays the same battle, so only the first run uses it
        seed_hex = args.seed if args.seed is not None and iteration == 0 else generate_seed()
        if not args.quiet:
            print(f"Seed: {seed_hex}")
        results.append(asyncio.run(simulate(args.players, seed_hex, args.theme, args.reward, quiet=args.quiet)))

    _print_summary(results)


if __name__ == "__main__":
    main()
