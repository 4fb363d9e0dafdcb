"""Privacy-gated percentile comparison of a player against their team.

Only aggregate percentiles leave this module; raw teammate ratings never do.
Opt-out and small-team gating both yield ``None`` so a caller cannot tell the
two apart.

``PercentileCache`` is the single authority for cached snapshots. While a
computation for a (team, player) key is in flight, the key and its team carry
generation counters that are bumped on opt-out and on roster change. A
computation captures the generations before it starts and may only write its
result back if they are unchanged, so a purge is never undone by a recompute
that was already in flight. Counters are dropped once the last computation
for a key or team is released.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from threading import RLock
from typing import Callable, Dict, List, Optional, Set, Tuple

from .errors import InvalidTeamSizeError
from .models import PercentileSnapshot, TeamRatings

logger = logging.getLogger(__name__)

MIN_TEAM_SIZE = 5
DEFAULT_RATING = 50
STRENGTH_PERCENTILE = 70
IMPROVEMENT_PERCENTILE = 30
DEFAULT_TTL_SECONDS = 3600

Key = Tuple[str, str]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def percentile_rank(value: int, team_values: List[int], team_size: int) -> int:
    """Share of the team strictly below ``value``, 0-100.

    Ties earn no credit and the player's own value never counts because it is
    not strictly below itself.
    """
    if team_size < 0:
        raise InvalidTeamSizeError(f"team size must be >= 0, got {team_size}")
    if team_size == 0:
        return 0
    below = sum(1 for v in team_values if v < value)
    return round_half_up(100 * below / team_size)


def compute_percentiles(
    team: TeamRatings,
    player_id: str,
    attributes: Optional[List[str]] = None,
    now: Optional[datetime] = None,
) -> Optional[PercentileSnapshot]:
    team_size = team.team_size
    if team_size < MIN_TEAM_SIZE:
        logger.debug("team %s has %d rated players, below %d", team.team_id, team_size, MIN_TEAM_SIZE)
        return None
    own = team.ratings.get(player_id)
    if not own:
        return None
    rated = [attrs for attrs in team.ratings.values() if attrs]
    names = attributes if attributes is not None else list(own)
    percentiles: Dict[str, int] = {}
    strengths: List[str] = []
    improvements: List[str] = []
    for name in names:
        column = [attrs.get(name, DEFAULT_RATING) for attrs in rated]
        pct = percentile_rank(own.get(name, DEFAULT_RATING), column, team_size)
        percentiles[name] = pct
        if pct >= STRENGTH_PERCENTILE:
            strengths.append(name)
        elif pct <= IMPROVEMENT_PERCENTILE:
            improvements.append(name)
    return PercentileSnapshot(
        team_id=team.team_id,
        player_id=player_id,
        percentiles=percentiles,
        strengths=strengths,
        improvements=improvements,
        team_size=team_size,
        computed_at=now or _now(),
    )


def team_distribution(
    team: TeamRatings,
    attributes: List[str],
    bins: int = 10,
    scale_max: int = 100,
) -> Optional[Dict[str, Dict[str, object]]]:
    """Anonymous per-attribute histogram for bell-curve display.

    Only bin counts and the rounded mean are returned. Extremes are left out
    since the highest or lowest value is always one teammate's own rating.
    """
    if team.team_size < MIN_TEAM_SIZE:
        return None
    rated = [attrs for attrs in team.ratings.values() if attrs]
    width = scale_max / bins
    res: Dict[str, Dict[str, object]] = {}
    for name in attributes:
        values = [attrs.get(name, DEFAULT_RATING) for attrs in rated]
        counts = [0] * bins
        for v in values:
            counts[min(int(v // width), bins - 1)] += 1
        res[name] = {
            "bins": counts,
            "mean": round_half_up(sum(values) / len(values)),
        }
    return res


class _Entry:
    __slots__ = ("snapshot", "expires_at")

    def __init__(self, snapshot: PercentileSnapshot, expires_at: datetime) -> None:
        self.snapshot = snapshot
        self.expires_at = expires_at


class PercentileCache:
    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], datetime] = _now) -> None:
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._lock = RLock()
        self._entries: Dict[Key, _Entry] = {}
        # generations exist only while a computation for the key or team is in flight
        self._generations: Dict[Key, int] = {}
        self._team_generations: Dict[str, int] = {}
        self._inflight: Dict[Key, int] = {}
        self._team_inflight: Dict[str, int] = {}
        self._opted_out: Set[str] = set()

    def now(self) -> datetime:
        return self._clock()

    def is_opted_out(self, player_id: str) -> bool:
        with self._lock:
            return player_id in self._opted_out

    def opt_out(self, player_id: str) -> None:
        with self._lock:
            self._opted_out.add(player_id)
            purged = [k for k in self._entries if k[1] == player_id]
            for k in purged:
                del self._entries[k]
            for k in self._inflight:
                if k[1] == player_id:
                    self._generations[k] = self._generations.get(k, 0) + 1
        logger.info("player %s opted out of comparisons, purged %d snapshot(s)", player_id, len(purged))

    def opt_in(self, player_id: str) -> None:
        with self._lock:
            self._opted_out.discard(player_id)
        logger.info("player %s opted back in to comparisons", player_id)

    def invalidate_team(self, team_id: str) -> None:
        with self._lock:
            if team_id in self._team_inflight:
                self._team_generations[team_id] = self._team_generations.get(team_id, 0) + 1
            purged = [k for k in self._entries if k[0] == team_id]
            for k in purged:
                del self._entries[k]
        logger.info("roster of team %s changed, purged %d snapshot(s)", team_id, len(purged))

    def get(self, key: Key) -> Optional[PercentileSnapshot]:
        with self._lock:
            if key[1] in self._opted_out:
                return None
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self.now():
                del self._entries[key]
                return None
            return entry.snapshot

    def begin(self, key: Key) -> Optional[Tuple[int, int]]:
        """Capture the generation a computation starts from, or None if forbidden.

        Every token handed out must be given back with ``release`` once the
        computation is over, committed or not.
        """
        with self._lock:
            if key[1] in self._opted_out:
                return None
            self._inflight[key] = self._inflight.get(key, 0) + 1
            self._team_inflight[key[0]] = self._team_inflight.get(key[0], 0) + 1
            return self._generations.get(key, 0), self._team_generations.get(key[0], 0)

    def release(self, key: Key) -> None:
        with self._lock:
            left = self._inflight.get(key, 0) - 1
            if left > 0:
                self._inflight[key] = left
            else:
                self._inflight.pop(key, None)
                self._generations.pop(key, None)
            team_left = self._team_inflight.get(key[0], 0) - 1
            if team_left > 0:
                self._team_inflight[key[0]] = team_left
            else:
                self._team_inflight.pop(key[0], None)
                self._team_generations.pop(key[0], None)

    def commit(self, key: Key, token: Tuple[int, int], snapshot: PercentileSnapshot) -> Optional[PercentileSnapshot]:
        """Store a finished computation unless a purge happened since ``begin``.

        Returns the snapshot the caller may expose: ``None`` after an opt-out,
        the fresh (uncached) snapshot after a roster change.
        """
        with self._lock:
            if key[1] in self._opted_out or self._generations.get(key, 0) != token[0]:
                logger.debug("dropping snapshot for %s, player opted out during computation", key)
                return None
            if self._team_generations.get(key[0], 0) != token[1]:
                logger.debug("not caching snapshot for %s, roster changed during computation", key)
                return snapshot
            expires = self.now() + self.ttl
            snapshot = PercentileSnapshot(
                team_id=snapshot.team_id,
                player_id=snapshot.player_id,
                percentiles=snapshot.percentiles,
                strengths=snapshot.strengths,
                improvements=snapshot.improvements,
                team_size=snapshot.team_size,
                computed_at=snapshot.computed_at,
                expires_at=expires,
            )
            self._entries[key] = _Entry(snapshot, expires)
            return snapshot

    def tracked_keys(self) -> int:
        """Number of keys and teams holding generation or in-flight state."""
        with self._lock:
            return len(self._generations) + len(self._team_generations) + len(self._inflight) + len(self._team_inflight)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class PercentileComparator:
    def __init__(self, cache: Optional[PercentileCache] = None, attributes: Optional[List[str]] = None) -> None:
        self.cache = cache if cache is not None else PercentileCache()
        self.attributes = attributes
        self._rosters: Dict[str, frozenset] = {}
        self._rosters_lock = RLock()

    def opt_out(self, player_id: str) -> None:
        self.cache.opt_out(player_id)

    def opt_in(self, player_id: str) -> None:
        self.cache.opt_in(player_id)

    def roster_changed(self, team_id: str) -> None:
        with self._rosters_lock:
            self._rosters.pop(team_id, None)
        self.cache.invalidate_team(team_id)

    def tracked_teams(self) -> int:
        with self._rosters_lock:
            return len(self._rosters)

    def _track_roster(self, team: TeamRatings) -> None:
        roster = frozenset(pid for pid, attrs in team.ratings.items() if attrs)
        with self._rosters_lock:
            previous = self._rosters.get(team.team_id)
            self._rosters[team.team_id] = roster
        if previous is not None and previous != roster:
            self.cache.invalidate_team(team.team_id)

    def compute_snapshot(self, team: TeamRatings, player_id: str) -> Optional[PercentileSnapshot]:
        if self.cache.is_opted_out(player_id):
            return None
        self._track_roster(team)
        key = (team.team_id, player_id)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("percentile cache hit for %s", key)
            return cached
        token = self.cache.begin(key)
        if token is None:
            return None
        try:
            snapshot = compute_percentiles(team, player_id, self.attributes, now=self.cache.now())
            if snapshot is None:
                return None
            return self.cache.commit(key, token, snapshot)
        finally:
            self.cache.release(key)

    def distribution(self, team: TeamRatings, player_id: str) -> Optional[Dict[str, Dict[str, object]]]:
        if self.cache.is_opted_out(player_id):
            return None
        attributes = self.attributes or sorted({a for attrs in team.ratings.values() for a in attrs})
        return team_distribution(team, attributes)
