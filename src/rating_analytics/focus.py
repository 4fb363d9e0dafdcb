import logging
from typing import Any, Dict, List, Mapping, Optional

from .models import AssessmentGap, FocusCandidate

logger = logging.getLogger(__name__)

MAX_RATING = 99
DEFAULT_TOP_N = 3
LARGE_GAP = 20


def equal_share(attribute_count: int) -> float:
    return 1.0 / attribute_count if attribute_count else 0.0


def recommend(
    values: Mapping[str, Mapping[str, Optional[int]]],
    weights: Mapping[str, float],
    top_n: int = DEFAULT_TOP_N,
) -> List[FocusCandidate]:
    """Rank sub-attributes by how much improving them could lift the overall rating.

    ``values`` maps attribute -> sub-attribute -> current coach rating, in
    declaration order; ``None`` marks a sub-attribute without a rating.
    ``weights`` holds each attribute's share of the overall rating (0.0-1.0).
    An attribute missing from ``weights`` gets an equal share so one gap in
    the table does not drop it from the ranking.
    """
    if top_n < 0:
        raise ValueError(f"top_n must be >= 0, got {top_n}")
    fallback = equal_share(len(values))
    candidates: List[FocusCandidate] = []
    for attribute, subs in values.items():
        weight = weights.get(attribute)
        if weight is None:
            logger.warning("no weight for attribute %r, using equal share %.4f", attribute, fallback)
            weight = fallback
        for sub_attribute, current in subs.items():
            if current is None:
                continue
            room = max(0, MAX_RATING - current)
            candidates.append(
                FocusCandidate(
                    attribute=attribute,
                    sub_attribute=sub_attribute,
                    current_value=current,
                    max_improvement=room,
                    weight=weight,
                    impact_score=room * weight,
                )
            )
    # sorted() is stable, so equal scores keep declaration order
    ranked = sorted(candidates, key=lambda c: c.impact_score, reverse=True)
    return ranked[:top_n]


def _gap(attribute: str, sub_attribute: Optional[str], own: Optional[int], coach: Optional[int]) -> Optional[AssessmentGap]:
    if own is None or coach is None:
        return None
    diff = coach - own
    return AssessmentGap(
        attribute=attribute,
        sub_attribute=sub_attribute,
        self_value=own,
        coach_value=coach,
        difference=diff,
        large_gap=abs(diff) >= LARGE_GAP,
    )


def compare_assessments(
    self_ratings: Mapping[str, Mapping[str, Any]],
    coach_ratings: Mapping[str, Mapping[str, Any]],
) -> List[AssessmentGap]:
    """Compare a player's self-assessment with the coach's ratings.

    Both sides map attribute -> ``{"value": int, "sub_attributes": {name: int}}``.
    ``difference`` is coach minus self. A pair is only compared when both sides
    rated it; the attribute-level gap comes before its sub-attribute gaps.
    """
    gaps: List[AssessmentGap] = []
    for attribute, own in self_ratings.items():
        coach = coach_ratings.get(attribute)
        if not coach:
            continue
        gap = _gap(attribute, None, own.get("value"), coach.get("value"))
        if gap is not None:
            gaps.append(gap)
        coach_subs = coach.get("sub_attributes") or {}
        for sub_attribute, value in (own.get("sub_attributes") or {}).items():
            gap = _gap(attribute, sub_attribute, value, coach_subs.get(sub_attribute))
            if gap is not None:
                gaps.append(gap)
    logger.debug("%d assessment gap(s), %d large", len(gaps), sum(1 for g in gaps if g.large_gap))
    return gaps
