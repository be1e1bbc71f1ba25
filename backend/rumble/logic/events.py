"""
Themed narrative templates for battle rounds.

Each theme is a flat table of template strings. A tag prefix decides the
category of a template:

- no prefix: a regular fight between {fighter1} and {fighter2}
- "REVIVE:": an eliminated player returns; both slots bind the same player
- "MASS_EVENT:": a named disaster that hits a random subset of combatants

Themes only change the flavor text. Unknown themes fall back to the default table.
"""

from dataclasses import dataclass
from functools import cache

from rumble.logic.enums import EventKind
from rumble.logic.models import DEFAULT_THEME

REVIVE_TAG = "REVIVE:"
MASS_TAG = "MASS_EVENT:"

_DEFAULT_TABLE: tuple[str, ...] = (
    "{fighter1} lunges at {fighter2} with a swift strike!",
    "{fighter1} dodges {fighter2}'s attack and counters with a powerful blow!",
    "{fighter1} and {fighter2} clash swords in a fierce exchange!",
    "{fighter1} parries {fighter2}'s attack and lands a critical hit!",
    "{fighter1} uses a spinning attack against {fighter2}!",
    "{fighter2} blocks {fighter1}'s strike and retaliates!",
    "{fighter1} delivers a devastating combo on {fighter2}!",
    "{fighter1} and {fighter2} engage in an intense duel!",
    "{fighter1} strikes {fighter2} with lightning speed!",
    "{fighter2} evades {fighter1}'s attack and strikes back!",
    "{fighter1} unleashes a powerful finisher on {fighter2}!",
    "{fighter1} and {fighter2} trade blows in rapid succession!",
    "{fighter1} performs a backflip and lands a kick on {fighter2}!",
    "{fighter2} sidesteps {fighter1}'s charge and delivers a roundhouse!",
    "{fighter1} throws a series of jabs at {fighter2}!",
    "{fighter2} catches {fighter1}'s arm and executes a throw!",
    "{fighter1} leaps into the air and comes down hard on {fighter2}!",
    "{fighter2} takes a defensive stance and counters {fighter1}'s advance!",
    "{fighter1} feints left then strikes right, catching {fighter2} off guard!",
    "{fighter2} blocks with a shield and pushes {fighter1} back!",
    "{fighter1} channels energy and releases a shockwave at {fighter2}!",
    "{fighter2} rolls under {fighter1}'s attack and sweeps their legs!",
    "{fighter1} uses a whirlwind technique against {fighter2}!",
    "{fighter2} deflects {fighter1}'s blade with precision!",
    "{fighter1} performs a triple strike combo on {fighter2}!",
    "{fighter2} uses a counter-attack technique on {fighter1}!",
    "{fighter1} charges at {fighter2} with a battle cry!",
    "{fighter2} meets {fighter1}'s charge head-on with equal force!",
    "{fighter1} uses a feint to create an opening against {fighter2}!",
    "{fighter2} reads {fighter1}'s movements and anticipates the attack!",
    "{fighter1} unleashes a flurry of strikes on {fighter2}!",
    "{fighter2} weaves through {fighter1}'s attacks with agility!",
    "{fighter1} delivers a crushing overhead strike to {fighter2}!",
    "{fighter2} deflects {fighter1}'s blow and spins into a counter!",
    "{fighter1} uses a grappling technique on {fighter2}!",
    "{fighter2} breaks free from {fighter1} and creates distance!",
    "{fighter1} throws a smoke bomb and strikes {fighter2} from the shadows!",
    "{fighter2} clears the smoke and finds {fighter1}!",
    "{fighter1} performs a spinning kick that connects with {fighter2}!",
    "{fighter2} recovers quickly and launches a counter-offensive on {fighter1}!",
    "{fighter1} mixes strikes and kicks against {fighter2}!",
    "{fighter2} blocks and parries {fighter1} with expert timing!",
    "REVIVE:{fighter1} finds a healing potion and is revived back into the battle!",
    "REVIVE:{fighter2} gets back up with renewed determination!",
    "REVIVE:{fighter1} is resurrected by a mysterious force!",
    "REVIVE:{fighter2} refuses to stay down and rejoins the fight!",
    "REVIVE:{fighter1} uses a phoenix feather and returns to battle!",
    "REVIVE:{fighter2} is healed by a passing medic and continues fighting!",
    "REVIVE:{fighter1} finds inner strength and gets back up!",
    "REVIVE:{fighter2} is saved by a guardian angel and rejoins!",
    "REVIVE:{fighter1} catches a second wind and returns!",
    "REVIVE:{fighter2} regenerates and comes back stronger!",
    "MASS_EVENT:Earthquake",
    "MASS_EVENT:Volcanic Eruption",
    "MASS_EVENT:Meteor Shower",
    "MASS_EVENT:Tsunami",
    "MASS_EVENT:Tornado",
    "MASS_EVENT:Lightning Storm",
    "MASS_EVENT:Avalanche",
    "MASS_EVENT:Poison Fog",
)

_CHRISTMAS_TABLE: tuple[str, ...] = (
    "{fighter1} pelts {fighter2} with a barrage of snowballs!",
    "{fighter1} ambushes {fighter2} from behind a snowman!",
    "{fighter2} blocks {fighter1}'s candy cane strike and hits back!",
    "{fighter1} and {fighter2} wrestle over the last gingerbread cookie!",
    "{fighter1} tangles {fighter2} in a string of fairy lights!",
    "{fighter2} slips on the ice and {fighter1} seizes the moment!",
    "{fighter1} launches an ornament at {fighter2}!",
    "{fighter2} swings a wreath at {fighter1} like a discus!",
    "{fighter1} rides a sled straight into {fighter2}!",
    "{fighter2} hides in a chimney and drops soot on {fighter1}!",
    "{fighter1} wraps {fighter2} up like a present!",
    "{fighter1} and {fighter2} duel with icicles!",
    "{fighter2} distracts {fighter1} with mistletoe and strikes!",
    "{fighter1} sprays {fighter2} with a blast of eggnog!",
    "{fighter2} calls in a reindeer kick on {fighter1}!",
    "{fighter1} rolls a giant snowball over {fighter2}!",
    "REVIVE:{fighter1} is thawed out by a warm cup of cocoa!",
    "REVIVE:{fighter2} finds an extra life in their stocking!",
    "REVIVE:{fighter1} is dug out of a snowdrift by friendly elves!",
    "REVIVE:{fighter2} gets a second chance from Santa's nice list!",
    "REVIVE:{fighter1} is revived by the spirit of Christmas!",
    "MASS_EVENT:Blizzard",
    "MASS_EVENT:Runaway Sleigh",
    "MASS_EVENT:Avalanche of Presents",
    "MASS_EVENT:Exploding Fruitcake",
    "MASS_EVENT:Krampus Attack",
)

_THEMES: dict[str, tuple[str, ...]] = {
    DEFAULT_THEME: _DEFAULT_TABLE,
    "christmas": _CHRISTMAS_TABLE,
}


@dataclass(frozen=True)
class EventScript:
    """A theme's templates partitioned by category, tags stripped."""

    theme: str
    regular: tuple[str, ...]
    revive: tuple[str, ...]
    mass: tuple[str, ...]


def classify(template: str) -> EventKind:
    if template.startswith(REVIVE_TAG):
        return EventKind.REVIVE
    if template.startswith(MASS_TAG):
        return EventKind.MASS
    return EventKind.FIGHT


def available_themes() -> list[str]:
    return sorted(_THEMES)


def resolve_theme(theme: str | None) -> str:
    """Normalize a theme name, falling back to the default table."""
    key = (theme or "").strip().lower()
    return key if key in _THEMES else DEFAULT_THEME


@cache
def event_script(theme: str | None = DEFAULT_THEME) -> EventScript:
    """Return the partitioned template table for a theme."""
    name = resolve_theme(theme)
    regular: list[str] = []
    revive: list[str] = []
    mass: list[str] = []
    for template in _THEMES[name]:
        kind = classify(template)
        if kind == EventKind.REVIVE:
            revive.append(template.removeprefix(REVIVE_TAG))
        elif kind == EventKind.MASS:
            mass.append(template.removeprefix(MASS_TAG))
        else:
            regular.append(template)
    return EventScript(theme=name, regular=tuple(regular), revive=tuple(revive), mass=tuple(mass))


def regular_events(theme: str | None = DEFAULT_THEME) -> tuple[str, ...]:
    return event_script(theme).regular


def revive_events(theme: str | None = DEFAULT_THEME) -> tuple[str, ...]:
    return event_script(theme).revive


def mass_events(theme: str | None = DEFAULT_THEME) -> tuple[str, ...]:
    return event_script(theme).mass


def render_fight(template: str, fighter1: str, fighter2: str) -> str:
    return template.replace("{fighter1}", fighter1).replace("{fighter2}", fighter2)


def render_revive(template: str, player: str) -> str:
    """Revive templates name the revived player in whichever slot they use."""
    return render_fight(template, player, player)


def mass_event_name(template: str) -> str:
    return template.removeprefix(MASS_TAG).strip()
