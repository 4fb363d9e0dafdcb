import heapq
from typing import List, Dict, Any, Iterable, Optional

from .models import RatingSeries, TrendResult, Milestone, ProgressionStats

TREND_WINDOW = 5
SIGNIFICANT_CHANGE = 5

MILESTONE_THRESHOLDS = (70, 80, 90)
MILESTONE_CATEGORIES = {70: "good", 80: "excellent", 90: "elite"}

PLATEAU_MIN_STEPS = 3
PLATEAU_MAX_CHANGE = 3


def diffs(values: List[int]) -> List[int]:
    ds: List[int] = []
    for i in range(len(values) - 1):
        ds.append(values[i + 1] - values[i])
    return ds


def step_changes(series: RatingSeries) -> List[int]:
    # derived from values so a point built without its change still counts
    return diffs(series.values)


def classify_trend(series: RatingSeries) -> TrendResult:
    if len(series) < 2:
        return TrendResult(category="stable", total_change=0, direction="stable", rate=0.0)
    window = series.values[-TREND_WINDOW:]
    total = window[-1] - window[0]
    ds = diffs(window)
    up = sum(1 for d in ds if d > 0)
    down = sum(1 for d in ds if d < 0)
    if abs(total) >= SIGNIFICANT_CHANGE:
        category, direction = ("improving", "up") if total > 0 else ("declining", "down")
    elif up > down:
        category, direction = "slightly_improving", "up"
    elif down > up:
        category, direction = "slightly_declining", "down"
    else:
        category, direction = "stable", "stable"
    return TrendResult(category=category, total_change=total, direction=direction, rate=total / len(window))


def detect_milestones(series: RatingSeries, thresholds: Iterable[int] = MILESTONE_THRESHOLDS) -> List[Milestone]:
    """First crossing of each quality threshold, in chronological order.

    A threshold fires at the first point whose value meets it, provided every
    earlier point was strictly below it. Later dips and re-crossings are
    ignored, so each threshold appears at most once.
    """
    pending = sorted(thresholds)
    res: List[Milestone] = []
    peak: Optional[int] = None
    for p in series.points:
        for t in list(pending):
            if p.value >= t and (peak is None or peak < t):
                res.append(
                    Milestone(
                        threshold=t,
                        achieved_at=p.timestamp,
                        category=MILESTONE_CATEGORIES.get(t, "good"),
                        value=p.value,
                        attribute=series.attribute,
                    )
                )
                pending.remove(t)
        peak = p.value if peak is None else max(peak, p.value)
        if not pending:
            break
    return res


def merge_milestones(groups: Iterable[List[Milestone]]) -> List[Milestone]:
    # heapq.merge is stable: equal timestamps keep the order of the input groups
    return list(heapq.merge(*groups, key=lambda m: m.achieved_at))


def count_plateaus(changes: List[int]) -> int:
    plateaus = 0
    run = 0
    for c in changes:
        if abs(c) < PLATEAU_MAX_CHANGE:
            run += 1
            continue
        if run >= PLATEAU_MIN_STEPS:
            plateaus += 1
        run = 0
    if run >= PLATEAU_MIN_STEPS:
        plateaus += 1
    return plateaus


def compute_stats(series: RatingSeries) -> ProgressionStats:
    if not series.points:
        return ProgressionStats()
    values = series.values
    changes = step_changes(series)
    moves = [c for c in changes if c != 0]
    return ProgressionStats(
        count=len(values),
        average=sum(values) / len(values),
        max=max(values),
        min=min(values),
        total_improvement=values[-1] - values[0],
        average_step_change=round(sum(moves) / len(moves), 2) if moves else 0.0,
        plateau_count=count_plateaus(changes),
    )


def analyze(series: RatingSeries) -> Dict[str, Any]:
    return {
        "trend": classify_trend(series),
        "stats": compute_stats(series),
        "milestones": detect_milestones(series),
    }
