"""
Tests for team percentile comparisons and the snapshot cache.
"""

import threading
import unittest
from datetime import timedelta
from unittest import mock

from rating_analytics import comparison
from rating_analytics.comparison import (
    PercentileCache,
    PercentileComparator,
    compute_percentiles,
    percentile_rank,
    team_distribution,
)
from rating_analytics.errors import InvalidTeamSizeError
from rating_analytics.models import TeamRatings

from helpers import START


def make_team(values, attribute="serve", team_id="t1"):
    return TeamRatings(team_id=team_id, ratings={f"p{i + 1}": {attribute: v} for i, v in enumerate(values)})


class FakeClock:
    def __init__(self):
        self.now = START

    def __call__(self):
        return self.now


class TestPercentiles(unittest.TestCase):

    def test_small_team_is_gated(self):
        team = make_team([10, 20, 30, 40])
        for pid in team.ratings:
            self.assertIsNone(compute_percentiles(team, pid))

    def test_strict_less_than_over_team_size(self):
        team = make_team([10, 20, 30, 40, 50])
        top = compute_percentiles(team, "p5")
        self.assertEqual(top.percentiles["serve"], 80)
        self.assertEqual(top.strengths, ["serve"])
        self.assertEqual(top.team_size, 5)
        bottom = compute_percentiles(team, "p1")
        self.assertEqual(bottom.percentiles["serve"], 0)
        self.assertEqual(bottom.improvements, ["serve"])
        middle = compute_percentiles(team, "p3")
        self.assertEqual(middle.percentiles["serve"], 40)
        self.assertEqual(middle.strengths, [])
        self.assertEqual(middle.improvements, [])

    def test_ties_get_no_credit(self):
        team = make_team([50, 50, 50, 60, 70])
        self.assertEqual(compute_percentiles(team, "p1").percentiles["serve"], 0)
        self.assertEqual(compute_percentiles(team, "p4").percentiles["serve"], 60)

    def test_half_rounds_up(self):
        team = make_team([10, 20, 30, 40, 50, 60, 70, 80])
        self.assertEqual(compute_percentiles(team, "p2").percentiles["serve"], 13)

    def test_missing_attribute_counts_as_default(self):
        team = make_team([10, 20, 30, 40, 60])
        team.ratings["p1"]["attack"] = 70
        snap = compute_percentiles(team, "p1")
        # four teammates default to 50 on attack
        self.assertEqual(snap.percentiles["attack"], 80)

    def test_unrated_players_do_not_count(self):
        team = make_team([10, 20, 30, 40])
        team.ratings["p5"] = {}
        self.assertIsNone(compute_percentiles(team, "p1"))

    def test_unknown_player(self):
        self.assertIsNone(compute_percentiles(make_team([10, 20, 30, 40, 50]), "nobody"))

    def test_negative_team_size_fails(self):
        with self.assertRaises(InvalidTeamSizeError):
            percentile_rank(50, [], -1)
        self.assertEqual(percentile_rank(50, [], 0), 0)

    def test_distribution(self):
        team = make_team([5, 15, 25, 95, 99])
        dist = team_distribution(team, ["serve"])
        self.assertEqual(dist["serve"]["bins"], [1, 1, 1, 0, 0, 0, 0, 0, 0, 2])
        self.assertEqual(dist["serve"]["mean"], 48)
        self.assertIsNone(team_distribution(make_team([5, 15]), ["serve"]))
        self.assertEqual(sorted(dist["serve"]), ["bins", "mean"])

    def test_distribution_hides_lone_extreme(self):
        team = TeamRatings("t1", {"me": {"serve": 50}, "a": {"serve": 50}, "b": {"serve": 50}, "c": {"serve": 50}, "star": {"serve": 97}})
        dist = PercentileComparator().distribution(team, "me")["serve"]
        self.assertEqual(dist["bins"][9], 1)
        self.assertNotIn(97, [v for k, v in dist.items() if k != "bins"])
        self.assertEqual(dist["mean"], 59)

    def test_team_size_counts_rated_players(self):
        team = make_team([10, 20, 30, 40, 50])
        team.ratings["bench"] = {}
        self.assertEqual(team.team_size, 5)
        self.assertEqual(compute_percentiles(team, "p5").team_size, 5)


class TestComparator(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.cache = PercentileCache(ttl_seconds=3600, clock=self.clock)
        self.comparator = PercentileComparator(self.cache)
        self.team = make_team([10, 20, 30, 40, 50])

    def test_snapshot_is_cached(self):
        first = self.comparator.compute_snapshot(self.team, "p5")
        self.assertEqual(first.expires_at, START + timedelta(hours=1))
        with mock.patch.object(comparison, "compute_percentiles") as compute:
            second = self.comparator.compute_snapshot(self.team, "p5")
        compute.assert_not_called()
        self.assertIs(first, second)

    def test_cache_expires(self):
        self.comparator.compute_snapshot(self.team, "p5")
        self.clock.now = START + timedelta(hours=1, seconds=1)
        with mock.patch.object(comparison, "compute_percentiles", wraps=compute_percentiles) as compute:
            self.comparator.compute_snapshot(self.team, "p5")
        compute.assert_called_once()

    def test_small_team_returns_none(self):
        self.assertIsNone(self.comparator.compute_snapshot(make_team([1, 2, 3, 4]), "p1"))

    def test_opt_out_purges_and_forbids(self):
        self.assertIsNotNone(self.comparator.compute_snapshot(self.team, "p5"))
        self.comparator.opt_out("p5")
        self.assertEqual(len(self.cache), 0)
        self.assertIsNone(self.comparator.compute_snapshot(self.team, "p5"))
        self.assertIsNone(self.comparator.distribution(self.team, "p5"))
        # other players are unaffected
        self.assertIsNotNone(self.comparator.compute_snapshot(self.team, "p1"))

    def test_opt_in_allows_recompute(self):
        self.comparator.opt_out("p5")
        self.comparator.opt_in("p5")
        self.assertEqual(self.comparator.compute_snapshot(self.team, "p5").percentiles["serve"], 80)

    def test_opt_out_during_computation_is_not_resurrected(self):
        def compute_then_opt_out(team, player_id, attributes=None, now=None):
            snapshot = compute_percentiles(team, player_id, attributes, now)
            self.comparator.opt_out(player_id)
            return snapshot

        with mock.patch.object(comparison, "compute_percentiles", side_effect=compute_then_opt_out):
            self.assertIsNone(self.comparator.compute_snapshot(self.team, "p5"))
        self.assertEqual(len(self.cache), 0)
        self.assertIsNone(self.comparator.compute_snapshot(self.team, "p5"))

    def test_opt_out_from_another_thread(self):
        started = threading.Event()
        release = threading.Event()
        results = []

        def slow_compute(team, player_id, attributes=None, now=None):
            started.set()
            release.wait(5)
            return compute_percentiles(team, player_id, attributes, now)

        def worker():
            results.append(self.comparator.compute_snapshot(self.team, "p5"))

        with mock.patch.object(comparison, "compute_percentiles", side_effect=slow_compute):
            t = threading.Thread(target=worker)
            t.start()
            self.assertTrue(started.wait(5))
            self.comparator.opt_out("p5")
            release.set()
            t.join(5)
        self.assertEqual(results, [None])
        self.assertIsNone(self.comparator.compute_snapshot(self.team, "p5"))

    def test_roster_change_invalidates_team(self):
        first = self.comparator.compute_snapshot(self.team, "p5")
        self.assertEqual(first.percentiles["serve"], 80)
        bigger = make_team([10, 20, 30, 40, 50, 60])
        second = self.comparator.compute_snapshot(bigger, "p5")
        self.assertEqual(second.team_size, 6)
        self.assertEqual(second.percentiles["serve"], 67)

    def test_roster_shrinking_below_floor(self):
        self.comparator.compute_snapshot(self.team, "p1")
        self.assertIsNone(self.comparator.compute_snapshot(make_team([10, 20, 30, 40]), "p1"))
        self.assertEqual(len(self.cache), 0)

    def test_explicit_roster_change(self):
        self.comparator.compute_snapshot(self.team, "p1")
        self.comparator.compute_snapshot(self.team, "p2")
        self.comparator.roster_changed("t1")
        self.assertEqual(len(self.cache), 0)

    def test_generation_state_is_released(self):
        for pid in ("p1", "p2", "p3"):
            self.comparator.compute_snapshot(self.team, pid)
        self.comparator.opt_out("p1")
        self.comparator.roster_changed("t1")
        self.assertEqual(self.cache.tracked_keys(), 0)
        self.assertEqual(self.comparator.tracked_teams(), 0)

    def test_failed_computation_releases_state(self):
        with mock.patch.object(comparison, "compute_percentiles", side_effect=RuntimeError("boom")):
            with self.assertRaises(RuntimeError):
                self.comparator.compute_snapshot(self.team, "p5")
        self.assertEqual(self.cache.tracked_keys(), 0)
        self.assertIsNotNone(self.comparator.compute_snapshot(self.team, "p5"))

    def test_roster_change_during_computation_is_not_cached(self):
        def compute_then_change(team, player_id, attributes=None, now=None):
            snapshot = compute_percentiles(team, player_id, attributes, now)
            self.comparator.roster_changed(team.team_id)
            return snapshot

        with mock.patch.object(comparison, "compute_percentiles", side_effect=compute_then_change):
            snap = self.comparator.compute_snapshot(self.team, "p5")
        self.assertEqual(snap.percentiles["serve"], 80)
        self.assertEqual(len(self.cache), 0)
        self.assertEqual(self.cache.tracked_keys(), 0)

    def test_restricted_attribute_list(self):
        comparator = PercentileComparator(PercentileCache(clock=self.clock), attributes=["serve", "attack"])
        snap = comparator.compute_snapshot(self.team, "p5")
        self.assertEqual(sorted(snap.percentiles), ["attack", "serve"])
        self.assertEqual(snap.percentiles["attack"], 0)


if __name__ == "__main__":
    unittest.main()
