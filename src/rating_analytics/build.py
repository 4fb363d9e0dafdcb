import argparse
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional

from .analyzer import analyze
from .comparison import PercentileCache, PercentileComparator
from .config import load_settings
from .dbkit.base import get_session
from .dbkit.crud import replace_series, upsert_analysis, set_opt_out, opted_out_players, current_ratings
from .export import export_all, ensure_dir
from .focus import compare_assessments, recommend, DEFAULT_TOP_N
from .models import AssessmentGap, TeamRatings, FocusCandidate, PercentileSnapshot
from .parser import load_payload, build_series, filter_window, parse_timestamp
from .report import build_reports
from .weights import weights_for_position

logger = logging.getLogger(__name__)


def focus_for_player(info: Dict[str, Any], top_n: int) -> List[FocusCandidate]:
    subs = info.get("sub_attributes") or {}
    if not subs:
        return []
    primary = info.get("primary_position")
    weights = weights_for_position(info.get("position"), (lambda: primary) if primary else None)
    return recommend(subs, weights, top_n)


def gaps_for_player(info: Dict[str, Any]) -> List[AssessmentGap]:
    own = info.get("self_assessment") or {}
    coach = info.get("coach_assessment") or {}
    return compare_assessments(own, coach)


def group_teams(players: Dict[str, Dict[str, Any]]) -> Dict[str, List[str]]:
    teams: Dict[str, List[str]] = {}
    for pid, info in players.items():
        team_id = info.get("team_id")
        if team_id:
            teams.setdefault(str(team_id), []).append(pid)
    return teams


def run(
    input_fp: Path,
    out_dir: Path,
    db_path: Path,
    start: Optional[str] = None,
    end: Optional[str] = None,
    top_n: int = DEFAULT_TOP_N,
    cache_ttl: int = 3600,
) -> None:
    records, players = load_payload(input_fp)
    series = build_series(records)
    logger.info("loaded %d ratings in %d series for %d players", len(records), len(series), len({s.player_id for s in series}))
    ensure_dir(out_dir)
    session = get_session(db_path)
    try:
        for s in series:
            replace_series(session, s)
        lo = parse_timestamp(start) if start else None
        hi = parse_timestamp(end) if end else None
        if lo or hi:
            series = [filter_window(s, lo, hi) for s in series]
        for s in series:
            a = analyze(s)
            upsert_analysis(session, s, a["trend"], a["stats"], a["milestones"])
        for pid, info in players.items():
            if "opted_out" in info:
                set_opt_out(session, pid, bool(info["opted_out"]))
        session.commit()

        comparator = PercentileComparator(PercentileCache(cache_ttl))
        for pid in opted_out_players(session):
            comparator.opt_out(pid)
        comparisons: Dict[str, Optional[PercentileSnapshot]] = {}
        for team_id, members in group_teams(players).items():
            team = TeamRatings(team_id=team_id, ratings=current_ratings(session, members))
            for pid in members:
                comparisons[pid] = comparator.compute_snapshot(team, pid)
    finally:
        session.close()

    reports = build_reports(series)
    focus = {pid: focus_for_player(info, top_n) for pid, info in players.items()}
    gaps = {pid: gaps_for_player(info) for pid, info in players.items()}
    export_all(out_dir, series, reports, focus, comparisons, gaps)
    logger.info("wrote report for %d players to %s", len(reports), out_dir)


def main() -> None:
    settings = load_settings()
    p = argparse.ArgumentParser(description="Build rating progress analytics from exported ratings.")
    p.add_argument("--input", default="ratings.json")
    p.add_argument("--out-dir", default=str(settings.out_dir))
    p.add_argument("--db-path", default=str(settings.db_path))
    p.add_argument("--from", dest="start", default=None, help="ISO date, inclusive")
    p.add_argument("--to", dest="end", default=None, help="ISO date, inclusive")
    p.add_argument("--top-n", type=int, default=DEFAULT_TOP_N)
    p.add_argument("--cache-ttl", type=int, default=settings.cache_ttl_seconds)
    p.add_argument("--log-level", default=settings.log_level)
    args = p.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    run(Path(args.input), Path(args.out_dir), Path(args.db_path), args.start, args.end, args.top_n, args.cache_ttl)


if __name__ == "__main__":
    main()
