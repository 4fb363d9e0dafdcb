from datetime import datetime, timedelta, timezone
from typing import List

from rating_analytics.models import RatingSeries

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def day(n: int) -> datetime:
    return START + timedelta(days=n)


def make_series(values: List[int], attribute: str = "serve", player_id: str = "p1") -> RatingSeries:
    return RatingSeries.from_values(player_id, attribute, [(day(i), v, None) for i, v in enumerate(values)])
