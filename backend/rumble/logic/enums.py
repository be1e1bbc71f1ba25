"""
String enum definitions for battle concepts.
"""

from enum import StrEnum


class BattleStatus(StrEnum):
    """Lifecycle status of a battle."""

    COLLECTING = "collecting"
    PENDING_TIP = "pending_tip"
    PENDING_APPROVAL = "pending_approval"
    ACTIVE = "active"
    FINISHED = "finished"


# statuses in which players may still join and the admin may still cancel
JOINABLE_STATUSES = frozenset({BattleStatus.COLLECTING, BattleStatus.PENDING_TIP, BattleStatus.PENDING_APPROVAL})


class Visibility(StrEnum):
    """Who can join a battle."""

    PUBLIC = "public"  # cross-community, one per process
    PRIVATE = "private"  # owning community only, one per community


class StatName(StrEnum):
    """Per-player counters tracked across battles."""

    BATTLES = "battles"
    WINS = "wins"
    KILLS = "kills"
    DEATHS = "deaths"
    REVIVES = "revives"


class EventKind(StrEnum):
    """Category of a narrated event inside a round."""

    FIGHT = "fight"
    REVIVE = "revive"
    MASS = "mass"


class TickOutcome(StrEnum):
    """What a single simulator tick did."""

    PLAYED = "played"  # a round was played and narrated
    SETTLE = "settle"  # fewer than two combatants remain
    STOPPED = "stopped"  # battle vanished or is no longer active
