"""
Attribute-comparison battle scoring.

Two humanoid cards are compared on str, dex and int. Each attribute is a
point for the higher card; ties score nobody. More points wins. Equal
points fall back to the attribute sum, and equal sums are a draw.

Scoring is deterministic: the same attributes always produce the same
outcome and the same explanation text.
"""

from collections.abc import Mapping

from boosterbattle.models.battle import AttributeComparison, BattleOutcome, Side, Verdict
from boosterbattle.models.card import ATTRIBUTE_NAMES


def compare_attribute(attribute: str, player_value: int, opponent_value: int) -> AttributeComparison:
    """Compare one attribute between two cards."""
    winner: Side
    if player_value > opponent_value:
        winner = "player"
    elif opponent_value > player_value:
        winner = "opponent"
    else:
        winner = "tie"
    return AttributeComparison(
        attribute=attribute,
        player_value=player_value,
        opponent_value=opponent_value,
        winner=winner,
    )


def score_battle(
    player_attributes: Mapping[str, int],
    opponent_attributes: Mapping[str, int],
    player_name: str = "Player",
    opponent_name: str = "Opponent",
) -> BattleOutcome:
    """
    Score a battle between two humanoid cards.

    Args:
        player_attributes: str/dex/int of the first card
        opponent_attributes: str/dex/int of the second card
        player_name: Label for the first card in the explanation
        opponent_name: Label for the second card in the explanation

    Returns:
        BattleOutcome with per-attribute comparisons and the verdict.
    """
    comparisons = tuple(
        compare_attribute(name, player_attributes[name], opponent_attributes[name])
        for name in ATTRIBUTE_NAMES
    )
    player_points = sum(1 for c in comparisons if c.winner == "player")
    opponent_points = sum(1 for c in comparisons if c.winner == "opponent")
    player_total = sum(player_attributes[name] for name in ATTRIBUTE_NAMES)
    opponent_total = sum(opponent_attributes[name] for name in ATTRIBUTE_NAMES)

    winner: Verdict
    if player_points != opponent_points:
        winner = "player" if player_points > opponent_points else "opponent"
    elif player_total != opponent_total:
        winner = "player" if player_total > opponent_total else "opponent"
    else:
        winner = "draw"

    explanation = build_explanation(
        comparisons,
        winner,
        player_name,
        opponent_name,
        tie_break=player_points == opponent_points,
        totals=(player_total, opponent_total),
    )

    return BattleOutcome(
        winner=winner,
        player_points=player_points,
        opponent_points=opponent_points,
        player_total=player_total,
        opponent_total=opponent_total,
        comparisons=comparisons,
        explanation=explanation,
    )


def build_explanation(
    comparisons: tuple[AttributeComparison, ...],
    winner: Verdict,
    player_name: str,
    opponent_name: str,
    tie_break: bool,
    totals: tuple[int, int],
) -> str:
    """Render the per-attribute comparisons and final verdict as text."""
    lines = [f"{player_name} vs {opponent_name}:", ""]

    for comp in comparisons:
        if comp.winner == "player":
            result = f"{player_name} wins"
        elif comp.winner == "opponent":
            result = f"{opponent_name} wins"
        else:
            result = "Tie"
        lines.append(
            f"{comp.attribute.upper()}: {player_name} ({comp.player_value}) vs "
            f"{opponent_name} ({comp.opponent_value}) - {result}"
        )

    lines.append("")
    if tie_break:
        lines.append(
            f"Attribute points tied; total attributes {totals[0]} vs {totals[1]}."
        )

    if winner == "player":
        lines.append(f"{player_name} wins the battle!")
    elif winner == "opponent":
        lines.append(f"{opponent_name} wins the battle!")
    else:
        lines.append("The battle ends in a draw!")

    return "\n".join(lines)
