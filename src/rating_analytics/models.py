from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Dict, Iterable, Tuple

from .errors import InconsistentChangeError, NonMonotonicTimestampError


@dataclass(frozen=True)
class RatingPoint:
    timestamp: datetime
    value: int
    change: Optional[int] = None
    note: Optional[str] = None


@dataclass(frozen=True)
class RatingSeries:
    player_id: str
    attribute: str
    points: Tuple[RatingPoint, ...] = ()

    def __post_init__(self) -> None:
        for i, point in enumerate(self.points):
            if i == 0:
                if point.change is not None:
                    raise InconsistentChangeError(
                        f"{self.player_id}/{self.attribute}: first point carries change {point.change}"
                    )
                continue
            prev = self.points[i - 1]
            if point.timestamp < prev.timestamp:
                raise NonMonotonicTimestampError(
                    f"{self.player_id}/{self.attribute}: point {i} at {point.timestamp} "
                    f"precedes {prev.timestamp}"
                )
            if point.change is not None and point.change != point.value - prev.value:
                raise InconsistentChangeError(
                    f"{self.player_id}/{self.attribute}: point {i} change {point.change} "
                    f"!= {point.value} - {prev.value}"
                )

    @classmethod
    def from_values(
        cls,
        player_id: str,
        attribute: str,
        entries: Iterable[Tuple[datetime, int, Optional[str]]],
    ) -> "RatingSeries":
        points: List[RatingPoint] = []
        for ts, value, note in entries:
            change = value - points[-1].value if points else None
            points.append(RatingPoint(timestamp=ts, value=value, change=change, note=note))
        return cls(player_id=player_id, attribute=attribute, points=tuple(points))

    def with_point(self, timestamp: datetime, value: int, note: Optional[str] = None) -> "RatingSeries":
        change = value - self.points[-1].value if self.points else None
        point = RatingPoint(timestamp=timestamp, value=value, change=change, note=note)
        return RatingSeries(self.player_id, self.attribute, self.points + (point,))

    @property
    def values(self) -> List[int]:
        return [p.value for p in self.points]

    def __len__(self) -> int:
        return len(self.points)


@dataclass(frozen=True)
class TrendResult:
    category: str
    total_change: int
    direction: str
    rate: float


@dataclass(frozen=True)
class Milestone:
    threshold: int
    achieved_at: datetime
    category: str
    value: int
    attribute: str = ""


@dataclass(frozen=True)
class ProgressionStats:
    count: int = 0
    average: float = 0.0
    max: int = 0
    min: int = 0
    total_improvement: int = 0
    average_step_change: float = 0.0
    plateau_count: int = 0


@dataclass(frozen=True)
class FocusCandidate:
    attribute: str
    sub_attribute: str
    current_value: int
    max_improvement: int
    weight: float
    impact_score: float


@dataclass(frozen=True)
class AssessmentGap:
    attribute: str
    sub_attribute: Optional[str]
    self_value: int
    coach_value: int
    difference: int
    large_gap: bool


@dataclass(frozen=True)
class TeamRatings:
    team_id: str
    ratings: Dict[str, Dict[str, int]]

    @property
    def team_size(self) -> int:
        return sum(1 for attrs in self.ratings.values() if attrs)


@dataclass(frozen=True)
class PercentileSnapshot:
    team_id: str
    player_id: str
    percentiles: Dict[str, int]
    strengths: List[str]
    improvements: List[str]
    team_size: int
    computed_at: datetime
    expires_at: Optional[datetime] = None
