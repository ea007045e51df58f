"""
Card generation for opened packs.

Each pack yields one card of the pack's family. An archetype is picked
uniformly, its primary attribute is rolled above the family baseline, and
rarity is derived from the rolled value alone.

The gold chance decides which band the primary attribute is rolled in:
the gold band [gold floor, baseline * 2] or the regular band
[baseline, gold floor - 1]. Both bands stay inside the roll range
[baseline, baseline * (1 + MAX_BONUS_PERCENT / 100)].
"""

import math
import random
from dataclasses import dataclass
from fractions import Fraction

from boosterbattle.config import settings
from boosterbattle.models.card import ATTRIBUTE_NAMES, CardType, GeneratedCard, Rarity
from boosterbattle.models.errors import ValidationError

# Highest bonus a primary attribute can roll, as a percentage of baseline
MAX_BONUS_PERCENT = 100

# Rarity thresholds as multiples of the family baseline (35 / 28 for baseline 20)
GOLD_THRESHOLD_RATIO = Fraction(7, 4)
SILVER_THRESHOLD_RATIO = Fraction(7, 5)


@dataclass(frozen=True, slots=True)
class Archetype:
    name: str
    primary: str


# Fixed archetype lists per family
ARCHETYPES: dict[CardType, tuple[Archetype, ...]] = {
    CardType.HUMANOID: (
        Archetype("Space Marine", "str"),
        Archetype("Galactic Ranger", "dex"),
        Archetype("Void Sorcerer", "int"),
    ),
    CardType.WEAPON: (
        Archetype("Plasma Rifle", "dex"),
        Archetype("Power Fist", "str"),
        Archetype("Psi-Blade", "int"),
    ),
}

BASELINES: dict[CardType, int] = {
    CardType.HUMANOID: 20,
    CardType.WEAPON: 10,
}


def parse_card_type(value: str) -> CardType:
    """Parse a pack/card type name, raising ValidationError if unknown."""
    try:
        return CardType(value)
    except ValueError:
        valid = ", ".join(t.value for t in CardType)
        raise ValidationError(
            f"Unknown pack type '{value}'.",
            suggestion=f"Valid pack types: {valid}",
        ) from None


def gold_threshold(baseline: int) -> int:
    """Lowest primary value that counts as gold for this baseline."""
    return math.ceil(baseline * GOLD_THRESHOLD_RATIO)


def silver_threshold(baseline: int) -> int:
    """Lowest primary value that counts as silver for this baseline."""
    return math.ceil(baseline * SILVER_THRESHOLD_RATIO)


def rarity_for(value: int, baseline: int = BASELINES[CardType.HUMANOID]) -> Rarity:
    """Derive rarity from a primary attribute value."""
    if value >= gold_threshold(baseline):
        return Rarity.GOLD
    if value >= silver_threshold(baseline):
        return Rarity.SILVER
    return Rarity.BRONZE


def gold_chance_percent(hours: float) -> float:
    """
    Chance (in percent) that an opened pack yields a gold card.

    Linear in the committed wait: 1% at 4 hours up to 20% at 24 hours.
    Hours outside the range are clamped first.
    """
    low_h, high_h = settings.min_delay_hours, settings.max_delay_hours
    low_p, high_p = settings.min_gold_chance_percent, settings.max_gold_chance_percent

    clamped = min(max(hours, low_h), high_h)
    return low_p + ((clamped - low_h) / (high_h - low_h)) * (high_p - low_p)


def roll_attribute(
    baseline: int,
    bonus_percent: float,
    rng: random.Random | None = None,
) -> int:
    """Roll uniformly in [baseline, baseline * (1 + bonus_percent / 100)], rounded."""
    rng = rng or random.Random()
    upper = round(baseline * (1 + bonus_percent / 100))
    return rng.randint(baseline, max(baseline, upper))


def roll_primary(
    baseline: int,
    gold_chance: float,
    rng: random.Random | None = None,
) -> int:
    """
    Roll a primary attribute, landing in the gold band with gold_chance percent.
    """
    rng = rng or random.Random()
    floor = gold_threshold(baseline)
    ceiling = round(baseline * (1 + MAX_BONUS_PERCENT / 100))

    if rng.random() * 100 < gold_chance:
        return rng.randint(floor, ceiling)

    # Regular band: same roll, capped just below gold
    regular_bonus = (floor - 1 - baseline) / baseline * 100
    return min(roll_attribute(baseline, regular_bonus, rng), floor - 1)


def generate_card(
    card_type: CardType,
    gold_chance: float,
    rng: random.Random | None = None,
) -> GeneratedCard:
    """
    Generate a card of the given family.

    Non-primary attributes stay at the family baseline.
    """
    rng = rng or random.Random()
    archetype = rng.choice(ARCHETYPES[card_type])
    baseline = BASELINES[card_type]

    attributes = {name: baseline for name in ATTRIBUTE_NAMES}
    attributes[archetype.primary] = roll_primary(baseline, gold_chance, rng)

    return GeneratedCard(
        card_type=card_type,
        card_name=archetype.name,
        attributes=attributes,
        rarity=rarity_for(attributes[archetype.primary], baseline),
        primary_attribute=archetype.primary,
    )
