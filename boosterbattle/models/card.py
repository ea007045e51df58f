from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

# Attribute keys, in the order battles compare them
ATTRIBUTE_NAMES: tuple[str, ...] = ("str", "dex", "int")


class CardType(str, Enum):
    """Card families. Each pack type yields cards of the same family."""

    HUMANOID = "humanoid"
    WEAPON = "weapon"


class Rarity(str, Enum):
    """Quality tier derived from the primary attribute roll."""

    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"


@dataclass(frozen=True, slots=True)
class Card:
    """
    A card owned by a player.

    Attributes:
        id: Card id (uuid string)
        owner_id: Current owner; changes only through a battle transfer
        card_type: humanoid or weapon
        card_name: Archetype name (e.g., "Space Marine")
        attributes: Integer stats keyed by "str", "dex", "int"
        rarity: Tier derived from the primary attribute value
        obtained_at: When the current owner received the card
    """

    id: str
    owner_id: str
    card_type: CardType
    card_name: str
    attributes: dict[str, int] = field(default_factory=dict)
    rarity: Rarity = Rarity.BRONZE
    obtained_at: datetime | None = None

    @property
    def is_humanoid(self) -> bool:
        return self.card_type == CardType.HUMANOID and all(
            isinstance(self.attributes.get(name), int) for name in ATTRIBUTE_NAMES
        )

    def attribute_total(self) -> int:
        """Sum of all attribute values."""
        return sum(self.attributes.get(name, 0) for name in ATTRIBUTE_NAMES)


@dataclass(frozen=True, slots=True)
class GeneratedCard:
    """A freshly rolled card that has not been persisted yet."""

    card_type: CardType
    card_name: str
    attributes: dict[str, int]
    rarity: Rarity
    primary_attribute: str

    @property
    def primary_value(self) -> int:
        return self.attributes[self.primary_attribute]
