import unittest
from datetime import datetime, timedelta

from streak.days import day_key, iter_day_keys, to_epoch_ms, whole_days_between
from streak.schemas import TrackedSite
from streak.streaks import (
    build_history,
    clean_since,
    compute_current_streak,
    compute_overall_streak,
    elapsed_seconds,
)

DAY0 = datetime(2025, 3, 10, 9, 30)


def site(site_id="yt", created_at=DAY0, pattern="youtube.com"):
    return TrackedSite(id=site_id, label=site_id.upper(), pattern=pattern, created_at=created_at)


class TestDays(unittest.TestCase):

    def test_whole_days_ignores_time_of_day(self):
        self.assertEqual(whole_days_between(datetime(2025, 3, 10, 23, 59), datetime(2025, 3, 11, 0, 1)), 1)
        self.assertEqual(whole_days_between(datetime(2025, 3, 10, 0, 1), datetime(2025, 3, 10, 23, 59)), 0)

    def test_iter_day_keys_inclusive(self):
        keys = list(iter_day_keys(datetime(2025, 2, 27, 18), datetime(2025, 3, 1, 8)))
        self.assertEqual(keys, ["2025-02-27", "2025-02-28", "2025-03-01"])


class TestCurrentStreak(unittest.TestCase):

    def test_visited_today_is_zero(self):
        self.assertEqual(compute_current_streak(site(), {"2025-03-10"}, DAY0), 0)

    def test_three_days_after_last_visit(self):
        now = DAY0 + timedelta(days=3)
        self.assertEqual(compute_current_streak(site(), {"2025-03-10"}, now), 3)

    def test_day_after_visit_counts_as_one(self):
        now = datetime(2025, 3, 11, 0, 5)
        self.assertEqual(compute_current_streak(site(), {"2025-03-10"}, now), 1)

    def test_uses_latest_visit_day(self):
        now = datetime(2025, 3, 20, 12)
        days = {"2025-03-10", "2025-03-18", "2025-03-12"}
        self.assertEqual(compute_current_streak(site(), days, now), 2)

    def test_never_visited_counts_creation_day(self):
        self.assertEqual(compute_current_streak(site(), set(), DAY0), 1)
        self.assertEqual(compute_current_streak(site(), set(), DAY0 + timedelta(days=4)), 5)

    def test_never_visited_bonus_is_opt_in(self):
        now = DAY0 + timedelta(days=4)
        self.assertEqual(compute_current_streak(site(), set(), now, never_visited_bonus=2), 7)

    def test_missing_created_at_counts_as_today(self):
        self.assertEqual(compute_current_streak(site(created_at=None), set(), DAY0), 1)


class TestOverallStreak(unittest.TestCase):

    def test_minimum_over_sites(self):
        now = DAY0 + timedelta(days=5)
        sites = [site("yt"), site("nf", pattern="netflix.com")]
        visits = {"yt": {"2025-03-13"}}
        # yt: 2 days since its last visit, nf: never visited for 6 days
        self.assertEqual(compute_overall_streak(sites, visits, now), 2)

    def test_sites_created_today_are_excluded(self):
        now = DAY0 + timedelta(days=5)
        sites = [site("yt"), site("new", created_at=now - timedelta(hours=1))]
        self.assertEqual(compute_overall_streak(sites, {}, now), 6)

    def test_zero_when_no_site_qualifies(self):
        self.assertEqual(compute_overall_streak([], {}, DAY0), 0)
        self.assertEqual(compute_overall_streak([site()], {}, DAY0), 0)


class TestHistory(unittest.TestCase):

    def test_statuses_from_first_creation_day(self):
        now = DAY0 + timedelta(days=3)
        history = build_history([site()], {"yt": {"2025-03-11"}}, now)
        self.assertEqual(
            [(h.day, h.status) for h in history],
            [
                ("2025-03-10", "clean"),
                ("2025-03-11", "visited"),
                ("2025-03-12", "clean"),
                ("2025-03-13", "today"),
            ],
        )

    def test_clean_since_prefers_precise_visit_instant(self):
        now = DAY0 + timedelta(days=1)
        last = DAY0 + timedelta(hours=2)
        since = clean_since([site()], {"yt": {day_key(last)}}, {"yt": to_epoch_ms(last)}, now)
        self.assertEqual(since, last)
        self.assertEqual(elapsed_seconds(since, now), 22 * 3600)

    def test_clean_since_falls_back_to_visit_day_then_creation(self):
        now = DAY0 + timedelta(days=2)
        self.assertEqual(clean_since([site()], {"yt": {"2025-03-11"}}, {}, now), datetime(2025, 3, 11))
        self.assertEqual(clean_since([site()], {}, {}, now), DAY0)
        self.assertEqual(clean_since([], {}, {}, now), now)


if __name__ == '__main__':
    unittest.main()
