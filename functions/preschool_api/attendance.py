"""
Attendance aggregation over class rolls.

A class roll maps student IDs to records carrying a ``status``. Only the
four statuses below are counted; anything else is ignored.
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import asdict
from datetime import date, timedelta
from typing import Iterable, Iterator, Mapping

from preschool_common.json_utils import convert_keys
from preschool_common.types import (
    AttendanceStats,
    AttendanceStatus,
    DailyAttendanceStat,
)

COUNTED_STATUSES = tuple(status.value for status in AttendanceStatus)


def percent(part: int, whole: int) -> int:
    """Whole-number percentage, rounding halves up."""
    if whole <= 0:
        return 0
    return int(math.floor(part * 100 / whole + 0.5))


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def tally_roll(students: Mapping[str, dict]) -> Counter:
    counts: Counter = Counter()
    for record in students.values():
        status = record.get("status") if isinstance(record, dict) else None
        if status in COUNTED_STATUSES:
            counts[str(status)] += 1
    return counts


def daily_stat(day: str, rolls: Iterable[Mapping]) -> DailyAttendanceStat:
    counts: Counter = Counter()
    for roll in rolls:
        counts.update(tally_roll(roll.get("students") or {}))
    present = counts[AttendanceStatus.PRESENT.value]
    total = sum(counts[status] for status in COUNTED_STATUSES)
    return DailyAttendanceStat(
        date=day,
        present=present,
        absent=counts[AttendanceStatus.ABSENT.value],
        tardy=counts[AttendanceStatus.TARDY.value],
        excused=counts[AttendanceStatus.EXCUSED.value],
        total=total,
        rate=percent(present, total),
    )


def summarize(daily: Iterable[DailyAttendanceStat]) -> AttendanceStats:
    stats = AttendanceStats()
    for day in daily:
        stats.total_days += 1
        stats.present_count += day.present
        stats.absent_count += day.absent
        stats.tardy_count += day.tardy
        stats.excused_count += day.excused
        stats.daily_stats.append(day)

    total = (
        stats.present_count
        + stats.absent_count
        + stats.tardy_count
        + stats.excused_count
    )
    stats.attendance_rate = percent(stats.present_count, total)
    return stats


def stats_as_dict(stats: AttendanceStats) -> dict:
    return convert_keys(asdict(stats), "snake_to_camel")
