import json
from dataclasses import asdict
from pathlib import Path
from typing import Dict, Any, List, Optional

from .models import AssessmentGap, RatingSeries, PercentileSnapshot, FocusCandidate


def ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def write_json(fp: Path, data: Any) -> None:
    fp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def series_rows(series: RatingSeries) -> List[Dict[str, Any]]:
    return [
        {
            "timestamp": p.timestamp.isoformat(),
            "value": p.value,
            "change": p.change,
            "note": p.note,
            "is_significant": abs(p.change or 0) >= 5,
        }
        for p in series.points
    ]


def snapshot_row(snapshot: Optional[PercentileSnapshot]) -> Optional[Dict[str, Any]]:
    if snapshot is None:
        return None
    return {
        "team_id": snapshot.team_id,
        "percentiles": snapshot.percentiles,
        "strengths": snapshot.strengths,
        "improvements": snapshot.improvements,
        "team_size": snapshot.team_size,
        "computed_at": snapshot.computed_at.isoformat(),
        "expires_at": snapshot.expires_at.isoformat() if snapshot.expires_at else None,
    }


def export_all(
    out_dir: Path,
    series: List[RatingSeries],
    reports: Dict[str, Dict[str, Any]],
    focus: Dict[str, List[FocusCandidate]],
    comparisons: Dict[str, Optional[PercentileSnapshot]],
    gaps: Optional[Dict[str, List[AssessmentGap]]] = None,
) -> None:
    data_dir = out_dir / "data"
    ensure_dir(data_dir)
    write_json(
        data_dir / "series.json",
        {f"{s.player_id}:{s.attribute}": series_rows(s) for s in series},
    )
    write_json(
        data_dir / "analysis.json",
        {pid: {"attributes": r["attributes"], "summary": r["summary"]} for pid, r in reports.items()},
    )
    write_json(data_dir / "milestones.json", {pid: r["milestones"] for pid, r in reports.items()})
    write_json(
        data_dir / "players.json",
        {
            pid: {
                "focus_areas": [asdict(c) for c in focus.get(pid, [])],
                "comparison": snapshot_row(comparisons.get(pid)),
                "assessment_gaps": [asdict(g) for g in (gaps or {}).get(pid, [])],
            }
            for pid in reports
        },
    )
