from __future__ import annotations

import itertools
import random
from typing import Callable

import pytest

from campaignkeeper.backend.initiative import roll_initiative
from campaignkeeper.backend.combatants import add_combatant
from campaignkeeper.backend.models import Encounter, OperationContext
from campaignkeeper.backend.state import build_encounter

FIXED_NOW = "2024-01-01T00:00:00+00:00"


def counter_ids(prefix: str = "id") -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter):04d}"


@pytest.fixture
def ctx() -> OperationContext:
    return OperationContext(
        actor_id="GM",
        id_factory=counter_ids(),
        clock=lambda: FIXED_NOW,
        rng=random.Random(7),
        initiative_die=20,
    )


@pytest.fixture
def encounter() -> Encounter:
    return build_encounter(encounter_id="enc-1", campaign_id="camp-1", name="Goblin Cave", now=FIXED_NOW)


@pytest.fixture
def duel(encounter: Encounter, ctx: OperationContext) -> Encounter:
    """A (max 10) and B (max 8) with manual initiative A=15, B=10: round 1, A active."""
    first = add_combatant(encounter, ctx, name="A", kind="PC", max_hp=10)
    second = add_combatant(encounter, ctx, name="B", kind="MONSTER", max_hp=8)
    roll_initiative(encounter, ctx, mode="manual", scores={first.id: 15, second.id: 10})
    return encounter
