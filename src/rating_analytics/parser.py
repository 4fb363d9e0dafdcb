import json
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Dict, Any, Iterable, Optional, Tuple

from .errors import InvalidRatingError, NonMonotonicTimestampError
from .models import RatingSeries

MIN_RATING = 1
MAX_RATING = 99


def parse_timestamp(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        ts = raw
    elif isinstance(raw, (int, float)):
        ts = datetime.fromtimestamp(raw, tz=timezone.utc)
    else:
        text = str(raw).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            ts = datetime.fromisoformat(text)
        except ValueError as e:
            raise InvalidRatingError(f"bad timestamp {raw!r}") from e
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _parse_value(raw: Any) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError) as e:
        raise InvalidRatingError(f"rating must be an integer, got {raw!r}") from e
    if value != raw and not isinstance(raw, str):
        raise InvalidRatingError(f"rating must be an integer, got {raw!r}")
    if not MIN_RATING <= value <= MAX_RATING:
        raise InvalidRatingError(f"rating {value} outside {MIN_RATING}-{MAX_RATING}")
    return value


def parse_record(row: Dict[str, Any]) -> Dict[str, Any]:
    player = row.get("player_id", row.get("playerId"))
    attribute = row.get("attribute", row.get("attributeName"))
    if not player or not attribute:
        raise InvalidRatingError(f"record needs player_id and attribute: {row!r}")
    note = row.get("note", row.get("notes"))
    return {
        "player_id": str(player),
        "attribute": str(attribute),
        "value": _parse_value(row.get("value")),
        "timestamp": parse_timestamp(row.get("timestamp", row.get("updatedAt"))),
        "note": note or None,
    }


def parse_records(rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [parse_record(r) for r in rows]


def load_payload(fp: Path) -> Tuple[List[Dict[str, Any]], Dict[str, Dict[str, Any]]]:
    """Read an export file: either a bare list of records or
    ``{"ratings": [...], "players": {player_id: {...}}}``."""
    data = json.loads(fp.read_text(encoding="utf-8"))
    if isinstance(data, list):
        return parse_records(data), {}
    return parse_records(data.get("ratings", [])), dict(data.get("players", {}))


def build_series(records: Iterable[Dict[str, Any]]) -> List[RatingSeries]:
    """Group records into one series per (player, attribute).

    Records must arrive in timestamp order per series; submissions sharing a
    timestamp keep arrival order. An earlier timestamp after a later one
    raises ``NonMonotonicTimestampError`` instead of being reordered.
    """
    groups: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
    for r in records:
        rows = groups.setdefault((r["player_id"], r["attribute"]), [])
        if rows and r["timestamp"] < rows[-1]["timestamp"]:
            raise NonMonotonicTimestampError(
                f"{r['player_id']}/{r['attribute']}: rating at {r['timestamp']} "
                f"arrived after {rows[-1]['timestamp']}"
            )
        rows.append(r)
    return [
        RatingSeries.from_values(player, attribute, [(r["timestamp"], r["value"], r["note"]) for r in rows])
        for (player, attribute), rows in groups.items()
    ]


def filter_window(series: RatingSeries, start: Optional[datetime] = None, end: Optional[datetime] = None) -> RatingSeries:
    kept = [
        p for p in series.points
        if (start is None or p.timestamp >= start) and (end is None or p.timestamp <= end)
    ]
    return RatingSeries.from_values(series.player_id, series.attribute, [(p.timestamp, p.value, p.note) for p in kept])
