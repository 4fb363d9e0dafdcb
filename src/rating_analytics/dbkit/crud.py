import json
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Session
from sqlalchemy import select, func
from .models import RatingEntry, SeriesAnalysis, ComparisonPreference
from ..errors import NonMonotonicTimestampError
from ..models import RatingSeries, TrendResult, ProgressionStats, Milestone


def _aware(ts: datetime) -> datetime:
    # SQLite drops tzinfo on the way back; entries are always stored in UTC
    return ts.astimezone(timezone.utc) if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def _last_entry(session: Session, player_id: str, attribute: str) -> Optional[RatingEntry]:
    stmt = (
        select(RatingEntry)
        .where(RatingEntry.player_id == player_id, RatingEntry.attribute == attribute)
        .order_by(RatingEntry.seq.desc())
        .limit(1)
    )
    return session.execute(stmt).scalar_one_or_none()


def append_rating(session: Session, player_id: str, attribute: str, value: int, recorded_at: datetime, note: Optional[str] = None) -> RatingEntry:
    recorded_at = _aware(recorded_at)
    last = _last_entry(session, player_id, attribute)
    if last is not None and recorded_at < _aware(last.recorded_at):
        raise NonMonotonicTimestampError(
            f"{player_id}/{attribute}: {recorded_at} precedes last entry at {last.recorded_at}"
        )
    obj = RatingEntry(
        player_id=player_id,
        attribute=attribute,
        seq=(last.seq + 1) if last is not None else 1,
        recorded_at=recorded_at,
        value=value,
        change=(value - last.value) if last is not None else None,
        note=note,
    )
    session.add(obj)
    session.flush()
    return obj


def replace_series(session: Session, series: RatingSeries) -> None:
    session.query(RatingEntry).filter(
        RatingEntry.player_id == series.player_id, RatingEntry.attribute == series.attribute
    ).delete()
    for i, p in enumerate(series.points, start=1):
        session.add(
            RatingEntry(
                player_id=series.player_id,
                attribute=series.attribute,
                seq=i,
                recorded_at=_aware(p.timestamp),
                value=p.value,
                change=p.change,
                note=p.note,
            )
        )
    session.flush()


def load_series(session: Session, player_id: str, attribute: str) -> RatingSeries:
    rows = session.execute(
        select(RatingEntry)
        .where(RatingEntry.player_id == player_id, RatingEntry.attribute == attribute)
        .order_by(RatingEntry.seq)
    ).scalars().all()
    return RatingSeries.from_values(player_id, attribute, [(_aware(r.recorded_at), r.value, r.note) for r in rows])


def list_attributes(session: Session, player_id: str) -> List[str]:
    rows = session.execute(
        select(RatingEntry.attribute).where(RatingEntry.player_id == player_id).distinct().order_by(RatingEntry.attribute)
    ).scalars().all()
    return list(rows)


def current_ratings(session: Session, player_ids: List[str]) -> Dict[str, Dict[str, int]]:
    latest = (
        select(RatingEntry.player_id, RatingEntry.attribute, func.max(RatingEntry.seq).label("seq"))
        .where(RatingEntry.player_id.in_(player_ids))
        .group_by(RatingEntry.player_id, RatingEntry.attribute)
        .subquery()
    )
    stmt = select(RatingEntry).join(
        latest,
        (RatingEntry.player_id == latest.c.player_id)
        & (RatingEntry.attribute == latest.c.attribute)
        & (RatingEntry.seq == latest.c.seq),
    )
    res: Dict[str, Dict[str, int]] = {pid: {} for pid in player_ids}
    for r in session.execute(stmt).scalars():
        res[r.player_id][r.attribute] = r.value
    return res


def _milestones_json(milestones: List[Milestone]) -> str:
    return json.dumps(
        [{"threshold": m.threshold, "category": m.category, "value": m.value, "achieved_at": m.achieved_at.isoformat()} for m in milestones]
    )


def upsert_analysis(session: Session, series: RatingSeries, trend: TrendResult, stats: ProgressionStats, milestones: List[Milestone]) -> None:
    obj = session.execute(
        select(SeriesAnalysis).where(SeriesAnalysis.player_id == series.player_id, SeriesAnalysis.attribute == series.attribute)
    ).scalar_one_or_none()
    if obj is None:
        obj = SeriesAnalysis(player_id=series.player_id, attribute=series.attribute)
        session.add(obj)
    obj.trend = trend.category
    obj.direction = trend.direction
    obj.rate = trend.rate
    obj.count = stats.count
    obj.average = stats.average
    obj.min = stats.min
    obj.max = stats.max
    obj.total_improvement = stats.total_improvement
    obj.plateau_count = stats.plateau_count
    obj.milestones = _milestones_json(milestones)


def load_analysis(session: Session, player_id: str, attribute: str) -> Optional[Dict[str, Any]]:
    obj = session.execute(
        select(SeriesAnalysis).where(SeriesAnalysis.player_id == player_id, SeriesAnalysis.attribute == attribute)
    ).scalar_one_or_none()
    if obj is None:
        return None
    return {
        "trend": obj.trend,
        "direction": obj.direction,
        "rate": obj.rate,
        "count": obj.count,
        "average": obj.average,
        "min": obj.min,
        "max": obj.max,
        "total_improvement": obj.total_improvement,
        "plateau_count": obj.plateau_count,
        "milestones": json.loads(obj.milestones),
    }


def set_opt_out(session: Session, player_id: str, opted_out: bool) -> None:
    obj = session.get(ComparisonPreference, player_id)
    if obj is None:
        session.add(ComparisonPreference(player_id=player_id, opted_out=opted_out))
    else:
        obj.opted_out = opted_out
    session.flush()


def is_opted_out(session: Session, player_id: str) -> bool:
    obj = session.get(ComparisonPreference, player_id)
    return bool(obj and obj.opted_out)


def opted_out_players(session: Session) -> List[str]:
    return list(
        session.execute(select(ComparisonPreference.player_id).where(ComparisonPreference.opted_out.is_(True))).scalars()
    )
