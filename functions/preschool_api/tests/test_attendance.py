import unittest
from datetime import date

from preschool_api.attendance import (
    daily_stat,
    iter_days,
    percent,
    stats_as_dict,
    summarize,
    tally_roll,
)


class AttendanceAggregationTests(unittest.TestCase):
    def test_percent_rounds_halves_up(self):
        self.assertEqual(percent(1, 8), 13)
        self.assertEqual(percent(1, 3), 33)
        self.assertEqual(percent(2, 3), 67)
        self.assertEqual(percent(1, 200), 1)
        self.assertEqual(percent(0, 0), 0)

    def test_iter_days_is_inclusive(self):
        days = list(iter_days(date(2025, 1, 30), date(2025, 2, 2)))
        self.assertEqual(len(days), 4)
        self.assertEqual(days[-1], date(2025, 2, 2))
        self.assertEqual(list(iter_days(date(2025, 2, 2), date(2025, 2, 1))), [])

    def test_tally_ignores_unknown_statuses(self):
        counts = tally_roll(
            {
                "s1": {"status": "present"},
                "s2": {"status": "late"},
                "s3": {"status": "tardy"},
                "s4": {},
            }
        )
        self.assertEqual(counts["present"], 1)
        self.assertEqual(counts["tardy"], 1)
        self.assertEqual(sum(counts.values()), 2)

    def test_daily_stat_merges_class_rolls(self):
        stat = daily_stat(
            "2025-01-06",
            [
                {"students": {"s1": {"status": "present"}, "s2": {"status": "absent"}}},
                {"students": {"s3": {"status": "present"}}},
                {},
            ],
        )
        self.assertEqual(stat.present, 2)
        self.assertEqual(stat.absent, 1)
        self.assertEqual(stat.total, 3)
        self.assertEqual(stat.rate, 67)

    def test_summarize(self):
        stats = summarize(
            [
                daily_stat("2025-01-06", [{"students": {"s1": {"status": "present"}}}]),
                daily_stat("2025-01-07", [{"students": {"s1": {"status": "excused"}}}]),
            ]
        )
        self.assertEqual(stats.total_days, 2)
        self.assertEqual(stats.present_count, 1)
        self.assertEqual(stats.excused_count, 1)
        self.assertEqual(stats.attendance_rate, 50)

        as_dict = stats_as_dict(stats)
        self.assertEqual(as_dict["attendanceRate"], 50)
        self.assertEqual(as_dict["dailyStats"][0]["date"], "2025-01-06")

    def test_summarize_nothing_is_zero(self):
        as_dict = stats_as_dict(summarize([]))
        self.assertEqual(as_dict["totalDays"], 0)
        self.assertEqual(as_dict["attendanceRate"], 0)
        self.assertEqual(as_dict["dailyStats"], [])


if __name__ == "__main__":
    unittest.main()
