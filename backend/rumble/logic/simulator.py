"""
Round simulator for battle royale elimination rounds.

play_round is pure: it takes the current membership of a battle and a random
source, and returns everything the round did. The caller persists the result
and narrates it. Every random draw happens in a fixed order so that a seeded
source replays a battle exactly:

1. random() for the mass-event roll, always drawn
2. mass round: randrange(template), uniform(fraction), sample(victims)
3. regular round: randrange(event count), then per event:
   random() revive roll (only when someone is eliminated);
   revive: randrange(player), randrange(template);
   duel: randrange(fighter1), randrange(fighter2) redrawn while equal,
   randrange(template), random() elimination roll, random() victim roll
"""

import math
from collections import defaultdict
from collections.abc import Sequence

from pydantic import BaseModel, Field

from rumble.logic.enums import EventKind, StatName
from rumble.logic.events import EventScript, mass_event_name, render_fight, render_revive
from rumble.logic.rng import RandomSource, pick

THIRD_PLACE_THRESHOLD = 3
SECOND_PLACE_THRESHOLD = 2
FIRST_FIGHTER_FALLS = 0.5  # victim roll below this eliminates fighter1


class RoundRules(BaseModel, frozen=True):
    """Probabilities and sizes that shape each round."""

    mass_event_chance: float = Field(default=0.08, ge=0, le=1)
    mass_event_min_active: int = Field(default=3, ge=3)
    mass_fraction_min: float = Field(default=0.2, ge=0, le=1)
    mass_fraction_max: float = Field(default=0.5, ge=0, le=1)
    mass_min_victims: int = Field(default=2, ge=1)
    min_events: int = Field(default=1, ge=1)
    max_events: int = Field(default=4, ge=1)
    revive_chance: float = Field(default=0.10, ge=0, le=1)
    elimination_chance: float = Field(default=0.30, ge=0, le=1)


DEFAULT_RULES = RoundRules()


class RoundEvent(BaseModel, frozen=True):
    """One narrated event inside a round."""

    kind: EventKind
    text: str
    actors: tuple[str, ...]  # duelists, the revived player, or mass-event victims
    victim: str | None = None
    killer: str | None = None


class RoundResult(BaseModel, frozen=True):
    """Outcome of a single round, ready to be persisted and narrated."""

    events: tuple[RoundEvent, ...]
    eliminated: tuple[str, ...]  # full eliminated set after the round, in elimination order
    eliminated_this_round: tuple[str, ...]
    revived_this_round: tuple[str, ...]
    runner_up: tuple[str, ...]  # [3rd, 2nd] buffer after the round
    stat_deltas: dict[str, dict[StatName, int]] = Field(default_factory=dict)
    mass_event: str | None = None

    @property
    def is_mass_event(self) -> bool:
        return self.mass_event is not None

    @property
    def runner_up_changed(self) -> bool:
        return bool(self.eliminated_this_round)


def active_players(participants: Sequence[str], eliminated: Sequence[str]) -> list[str]:
    out = set(eliminated)
    return [p for p in participants if p not in out]


def mass_victim_count(active_count: int, fraction: float, rules: RoundRules = DEFAULT_RULES) -> int:
    """Number of mass-event victims: a fraction of the field, at least the minimum, never everyone."""
    return max(rules.mass_min_victims, min(math.floor(active_count * fraction), active_count - 1))


def update_runner_up(
    participants: Sequence[str],
    eliminated_after: Sequence[str],
    eliminated_this_round: Sequence[str],
    runner_up: Sequence[str],
) -> tuple[str, ...]:
    """
    Replay this round's eliminations against the [3rd, 2nd] buffer.

    The eliminated set is rewound to exclude this round's eliminations, then
    each elimination is re-applied in order. A player eliminated while exactly
    three were active becomes the new 3rd place, replacing any earlier one. A
    player eliminated while exactly two were active becomes 2nd place, keeping
    the current 3rd place in front of them.
    """
    buffer = list(runner_up)
    this_round = set(eliminated_this_round)
    scratch = {p for p in eliminated_after if p not in this_round}
    for player in eliminated_this_round:
        active_before = sum(1 for p in participants if p not in scratch)
        scratch.add(player)
        if active_before == THIRD_PLACE_THRESHOLD:
            buffer = [player]
        elif active_before == SECOND_PLACE_THRESHOLD:
            buffer = [player] if not buffer else [buffer[0], player]
    return tuple(buffer)


class _RoundState:
    """Mutable working state for one round."""

    def __init__(self, participants: Sequence[str], eliminated: Sequence[str]) -> None:
        self.participants = tuple(participants)
        self.eliminated: list[str] = list(eliminated)
        self.eliminated_this_round: list[str] = []
        self.revived_this_round: list[str] = []
        self.events: list[RoundEvent] = []
        self.stats: defaultdict[str, defaultdict[StatName, int]] = defaultdict(lambda: defaultdict(int))

    def active(self) -> list[str]:
        return active_players(self.participants, self.eliminated)

    def eliminate(self, victim: str, killer: str | None = None) -> bool:
        if victim in self.eliminated:
            return False
        self.eliminated.append(victim)
        self.eliminated_this_round.append(victim)
        self.stats[victim][StatName.DEATHS] += 1
        if killer is not None:
            self.stats[killer][StatName.KILLS] += 1
        return True

    def revive(self, player: str) -> None:
        self.eliminated.remove(player)
        self.revived_this_round.append(player)
        self.stats[player][StatName.REVIVES] += 1


def _play_mass_event(state: _RoundState, script: EventScript, rng: RandomSource, rules: RoundRules) -> str:
    name = mass_event_name(pick(rng, script.mass))
    active = state.active()
    fraction = rng.uniform(rules.mass_fraction_min, rules.mass_fraction_max)
    victims = rng.sample(active, mass_victim_count(len(active), fraction, rules))
    for victim in victims:
        state.eliminate(victim)
    state.events.append(
        RoundEvent(
            kind=EventKind.MASS,
            text=name,
            actors=tuple(victims),
        )
    )
    return name


def _play_revive(state: _RoundState, script: EventScript, rng: RandomSource) -> None:
    player = pick(rng, state.eliminated)
    state.revive(player)
    template = pick(rng, script.revive)
    state.events.append(RoundEvent(kind=EventKind.REVIVE, text=render_revive(template, player), actors=(player,)))


def _play_duel(state: _RoundState, active: list[str], script: EventScript, rng: RandomSource, rules: RoundRules) -> None:
    first = rng.randrange(len(active))
    second = rng.randrange(len(active))
    while second == first:
        second = rng.randrange(len(active))
    fighter1, fighter2 = active[first], active[second]
    template = pick(rng, script.regular)

    victim = killer = None
    if rng.random() < rules.elimination_chance:
        if rng.random() < FIRST_FIGHTER_FALLS:
            victim, killer = fighter1, fighter2
        else:
            victim, killer = fighter2, fighter1
        if not state.eliminate(victim, killer):
            victim = killer = None

    state.events.append(
        RoundEvent(
            kind=EventKind.FIGHT,
            text=render_fight(template, fighter1, fighter2),
            actors=(fighter1, fighter2),
            victim=victim,
            killer=killer,
        )
    )


def play_round(
    participants: Sequence[str],
    eliminated: Sequence[str],
    runner_up: Sequence[str],
    script: EventScript,
    rng: RandomSource,
    rules: RoundRules = DEFAULT_RULES,
) -> RoundResult:
    """
    Play one round against the given membership.

    The caller is expected to settle instead of calling this when fewer than
    two players are active.
    """
    state = _RoundState(participants, eliminated)
    active = state.active()
    if len(active) < SECOND_PLACE_THRESHOLD:
        raise ValueError("a round needs at least two active players")

    mass_event = None
    mass_roll = rng.random()
    if mass_roll < rules.mass_event_chance and len(active) >= rules.mass_event_min_active and script.mass:
        mass_event = _play_mass_event(state, script, rng, rules)
    else:
        event_count = rng.randrange(rules.max_events - rules.min_events + 1) + rules.min_events
        for _ in range(event_count):
            if state.eliminated and rng.random() < rules.revive_chance:
                _play_revive(state, script, rng)
                continue
            current = state.active()
            if len(current) < SECOND_PLACE_THRESHOLD:
                break
            _play_duel(state, current, script, rng, rules)

    return RoundResult(
        events=tuple(state.events),
        eliminated=tuple(state.eliminated),
        eliminated_this_round=tuple(state.eliminated_this_round),
        revived_this_round=tuple(state.revived_this_round),
        runner_up=update_runner_up(state.participants, state.eliminated, state.eliminated_this_round, runner_up),
        stat_deltas={user: dict(counts) for user, counts in state.stats.items()},
        mass_event=mass_event,
    )
