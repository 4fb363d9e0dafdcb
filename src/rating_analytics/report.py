from dataclasses import asdict
from typing import List, Dict, Any, Optional

from .analyzer import analyze, merge_milestones, diffs, PLATEAU_MAX_CHANGE
from .comparison import round_half_up
from .models import RatingSeries, Milestone

RECENT_POINTS = 3


def is_plateauing(series: RatingSeries) -> bool:
    if len(series) < RECENT_POINTS:
        return False
    return all(abs(d) < PLATEAU_MAX_CHANGE for d in diffs(series.values[-RECENT_POINTS:]))


def milestone_row(m: Milestone) -> Dict[str, Any]:
    return {
        "attribute": m.attribute,
        "threshold": m.threshold,
        "category": m.category,
        "value": m.value,
        "achieved_at": m.achieved_at.isoformat(),
    }


def build_player_report(player_id: str, series_list: List[RatingSeries]) -> Dict[str, Any]:
    attributes: Dict[str, Dict[str, Any]] = {}
    milestone_groups: List[List[Milestone]] = []
    improvements: List[Dict[str, Any]] = []
    plateau_attributes: List[str] = []
    entries = 0
    for s in sorted(series_list, key=lambda x: x.attribute):
        if not s.points:
            continue
        a = analyze(s)
        stats = a["stats"]
        entries += stats.count
        attributes[s.attribute] = {
            "trend": asdict(a["trend"]),
            "stats": asdict(stats),
            "milestones": [milestone_row(m) for m in a["milestones"]],
            "current_value": s.points[-1].value,
        }
        milestone_groups.append(a["milestones"])
        if stats.total_improvement != 0:
            improvements.append({"name": s.attribute, "improvement": stats.total_improvement, "current_value": s.points[-1].value})
        if is_plateauing(s):
            plateau_attributes.append(s.attribute)
    most_improved: Optional[Dict[str, Any]] = None
    most_declined: Optional[Dict[str, Any]] = None
    avg_improvement = 0.0
    currents = [a["current_value"] for a in attributes.values()]
    avg_current = round_half_up(sum(currents) / len(currents)) if currents else 0
    if improvements:
        ranked = sorted(improvements, key=lambda x: x["improvement"], reverse=True)
        most_improved, most_declined = ranked[0], ranked[-1]
        avg_improvement = round(sum(x["improvement"] for x in improvements) / len(improvements), 2)
    return {
        "player_id": player_id,
        "attributes": attributes,
        "milestones": [milestone_row(m) for m in merge_milestones(milestone_groups)],
        "summary": {
            "total_attributes": len(attributes),
            "total_entries": entries,
            "average_current_rating": avg_current,
            "average_improvement": avg_improvement,
            "most_improved": most_improved,
            "most_declined": most_declined,
            "plateau_attributes": plateau_attributes,
        },
    }


def build_reports(series_list: List[RatingSeries]) -> Dict[str, Dict[str, Any]]:
    by_player: Dict[str, List[RatingSeries]] = {}
    for s in series_list:
        by_player.setdefault(s.player_id, []).append(s)
    return {pid: build_player_report(pid, lst) for pid, lst in sorted(by_player.items())}
