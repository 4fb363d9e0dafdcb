"""Attribute weight tables, position resolution and league tiers.

Weights are stored as percentages per position and normalized to fractions
before they reach the focus-area recommender. Universal players have no fixed
position; the caller supplies a resolver that picks the position whose table
applies.
"""

import logging
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

CORE_ATTRIBUTES = [
    "athleticism",
    "serve",
    "defense",
    "attack",
    "mental",
    "reception",
    "fundamentals",
    "position_specific",
]

UNIVERSAL = "universal"

POSITION_WEIGHTS: Dict[str, Dict[str, int]] = {
    "setter": {
        "position_specific": 25,
        "mental": 18,
        "fundamentals": 18,
        "athleticism": 14,
        "serve": 12,
        "defense": 12,
        "attack": 5,
        "reception": 1,
    },
    "libero": {
        "position_specific": 20,
        "reception": 20,
        "defense": 18,
        "mental": 15,
        "fundamentals": 15,
        "athleticism": 12,
        "attack": 0,
        "serve": 0,
    },
    "middle": {
        "position_specific": 24,
        "attack": 18,
        "athleticism": 16,
        "serve": 12,
        "fundamentals": 10,
        "mental": 10,
        "defense": 9,
        "reception": 1,
    },
    "opposite": {
        "position_specific": 22,
        "attack": 20,
        "defense": 12,
        "athleticism": 12,
        "serve": 12,
        "fundamentals": 12,
        "mental": 9,
        "reception": 1,
    },
    "outside": {
        "reception": 18,
        "mental": 16,
        "attack": 15,
        "position_specific": 11,
        "athleticism": 10,
        "fundamentals": 10,
        "serve": 10,
        "defense": 10,
    },
}

# older roster exports use the long position names
POSITION_ALIASES = {
    "middle_blocker": "middle",
    "opposite_hitter": "opposite",
    "outside_hitter": "outside",
}

DEFAULT_WEIGHTS: Dict[str, int] = {
    "athleticism": 12,
    "serve": 15,
    "defense": 15,
    "attack": 15,
    "mental": 12,
    "reception": 10,
    "fundamentals": 11,
    "position_specific": 10,
}

PositionResolver = Callable[[], Optional[str]]


def canonical_position(position: Optional[str]) -> Optional[str]:
    if not position:
        return None
    key = position.strip().lower().replace(" ", "_").replace("-", "_")
    return POSITION_ALIASES.get(key, key)


def normalize_weights(percentages: Dict[str, float]) -> Dict[str, float]:
    total = sum(percentages.values())
    if total <= 0:
        return {k: 0.0 for k in percentages}
    return {k: v / total for k, v in percentages.items()}


def weights_for_position(position: Optional[str], resolve_position: Optional[PositionResolver] = None) -> Dict[str, float]:
    pos = canonical_position(position)
    if pos == UNIVERSAL:
        resolved = canonical_position(resolve_position()) if resolve_position is not None else None
        logger.debug("universal player resolved to position %s", resolved)
        pos = resolved
    table = POSITION_WEIGHTS.get(pos or "")
    if table is None:
        if pos and pos != UNIVERSAL:
            logger.warning("no weight table for position %r, using defaults", pos)
        table = DEFAULT_WEIGHTS
    return normalize_weights(table)


# 0-800 composite scale: each league spans 100 points, rating 1-99 inside it
LEAGUE_LEVELS: List[str] = [
    "Kreisliga",
    "Bezirksklasse",
    "Bezirksliga",
    "Landesliga",
    "Bayernliga",
    "Regionalliga",
    "Dritte Liga",
    "Bundesliga",
]


def composite_score(level: int, rating: Optional[int]) -> int:
    return level * 100 + (rating or 1)


def split_composite(score: int) -> Tuple[int, int]:
    level = min(max(score, 0) // 100, len(LEAGUE_LEVELS) - 1)
    return level, max(score - level * 100, 1)


def league_for_composite(score: int) -> str:
    level, _ = split_composite(score)
    return LEAGUE_LEVELS[level]


def overall_rating(attribute_scores: Dict[str, int], weights: Dict[str, float]) -> int:
    """Weighted composite over the core attributes.

    Missing attributes count as the lowest composite score (level 0, rating 1).
    """
    total = 0.0
    for name in CORE_ATTRIBUTES:
        total += attribute_scores.get(name, 1) * weights.get(name, 0.0)
    return int(total + 0.5)
