from datetime import timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from safecheck.deadlines import (
    CheckInStatus,
    alert_deadline,
    classify,
    format_time_remaining,
    next_required_check_in,
)
from safecheck.models import CheckIn
from safecheck.schedule import Schedule

from .conftest import utc

DAILY_9 = Schedule.build(frequency="daily", times=["09:00"], grace_period_minutes=60)


class TestNextRequiredCheckIn:
    def test_daily_before_time_is_same_day(self):
        assert next_required_check_in(DAILY_9, utc(2024, 1, 1, 8, 59)) == utc(2024, 1, 1, 9, 0)

    def test_daily_after_time_is_next_day(self):
        assert next_required_check_in(DAILY_9, utc(2024, 1, 1, 9, 1)) == utc(2024, 1, 2, 9, 0)

    def test_candidate_equal_to_start_is_skipped(self):
        assert next_required_check_in(DAILY_9, utc(2024, 1, 1, 9, 0)) == utc(2024, 1, 2, 9, 0)

    def test_daily_property_over_many_days(self):
        for day in range(1, 29):
            assert next_required_check_in(DAILY_9, utc(2024, 2, day, 8, 0)) == utc(2024, 2, day, 9, 0)
            assert next_required_check_in(DAILY_9, utc(2024, 2, day, 10, 0)) == utc(2024, 2, day, 9, 0) + timedelta(days=1)

    def test_twice_daily_picks_next_slot(self):
        s = Schedule.build(frequency="twice-daily", times=["20:00", "08:00"])
        assert next_required_check_in(s, utc(2024, 1, 1, 12, 0)) == utc(2024, 1, 1, 20, 0)
        assert next_required_check_in(s, utc(2024, 1, 1, 21, 0)) == utc(2024, 1, 2, 8, 0)

    def test_custom_adds_interval(self):
        s = Schedule.build(frequency="custom", custom_interval_hours=6)
        assert next_required_check_in(s, utc(2024, 1, 1, 22, 30)) == utc(2024, 1, 2, 4, 30)

    def test_weekly_same_day_later_time(self):
        # 2024-01-01 is a Monday (index 1)
        s = Schedule.build(frequency="weekly", times=["10:00"], days=[1, 4])
        assert next_required_check_in(s, utc(2024, 1, 1, 9, 0)) == utc(2024, 1, 1, 10, 0)

    def test_weekly_moves_to_later_day(self):
        s = Schedule.build(frequency="weekly", times=["10:00"], days=[1, 4])
        assert next_required_check_in(s, utc(2024, 1, 1, 10, 0)) == utc(2024, 1, 4, 10, 0)

    def test_weekly_wraps_to_first_day_next_week(self):
        s = Schedule.build(frequency="weekly", times=["10:00"], days=[4, 1])
        assert next_required_check_in(s, utc(2024, 1, 4, 11, 0)) == utc(2024, 1, 8, 10, 0)

    def test_weekly_single_day_wraps_a_full_week(self):
        s = Schedule.build(frequency="weekly", times=["10:00"], days=[1])
        assert next_required_check_in(s, utc(2024, 1, 1, 10, 30)) == utc(2024, 1, 8, 10, 0)

    def test_weekly_sunday_wraps_from_saturday(self):
        s = Schedule.build(frequency="weekly", times=["07:00"], days=[0])
        assert next_required_check_in(s, utc(2024, 1, 6, 12, 0)) == utc(2024, 1, 7, 7, 0)

    @pytest.mark.parametrize("days", [[0], [3], [1, 4], [0, 6], [0, 1, 2, 3, 4, 5, 6]])
    def test_weekly_never_more_than_seven_days_ahead(self, days):
        s = Schedule.build(frequency="weekly", times=["06:15", "18:45"], days=days)
        start = utc(2024, 1, 1, 0, 0)
        for step in range(0, 14 * 24 * 4):
            frm = start + timedelta(minutes=15 * step)
            nxt = next_required_check_in(s, frm)
            assert frm < nxt <= frm + timedelta(days=7)

    def test_times_are_wall_clock_in_reference_zone(self):
        ny = ZoneInfo("America/New_York")
        # 10:00 EST on the day before the spring-forward change
        nxt = next_required_check_in(DAILY_9, utc(2024, 3, 9, 15, 0), tz=ny)
        assert nxt == utc(2024, 3, 10, 13, 0)  # 09:00 EDT
        assert nxt.tzinfo == timezone.utc

    def test_naive_input_is_treated_as_utc(self):
        assert next_required_check_in(DAILY_9, utc(2024, 1, 1, 8, 0).replace(tzinfo=None)) == utc(2024, 1, 1, 9, 0)


class TestAlertDeadline:
    def test_no_history_is_due_now(self):
        now = utc(2024, 5, 5, 12, 0)
        assert alert_deadline(DAILY_9, None, now=now) == now

    def test_grace_added_to_next_required(self):
        last = CheckIn(user_id=1, timestamp=utc(2024, 1, 1, 9, 5).replace(tzinfo=None))
        assert alert_deadline(DAILY_9, last) == utc(2024, 1, 2, 10, 0)

    def test_accepts_bare_timestamp(self):
        assert alert_deadline(DAILY_9, utc(2024, 1, 1, 9, 5)) == utc(2024, 1, 2, 10, 0)


class TestClassify:
    last = utc(2024, 1, 1, 9, 5)

    def test_concrete_scenario(self):
        assert classify(DAILY_9, self.last, now=utc(2024, 1, 2, 8, 0)) == CheckInStatus.COMPLIANT
        assert classify(DAILY_9, self.last, now=utc(2024, 1, 2, 9, 45)) == CheckInStatus.DUE_SOON
        assert classify(DAILY_9, self.last, now=utc(2024, 1, 2, 10, 1)) == CheckInStatus.OVERDUE

    def test_threshold_edges(self):
        assert classify(DAILY_9, self.last, now=utc(2024, 1, 2, 9, 31)) == CheckInStatus.DUE_SOON
        assert classify(DAILY_9, self.last, now=utc(2024, 1, 2, 9, 30)) == CheckInStatus.COMPLIANT
        assert classify(DAILY_9, self.last, now=utc(2024, 1, 2, 10, 0)) == CheckInStatus.DUE_SOON

    def test_due_soon_window_ignores_grace_length(self):
        s = Schedule.build(frequency="daily", times=["09:00"], grace_period_minutes=120)
        # deadline 11:00
        assert classify(s, self.last, now=utc(2024, 1, 2, 10, 0)) == CheckInStatus.COMPLIANT
        assert classify(s, self.last, now=utc(2024, 1, 2, 10, 31)) == CheckInStatus.DUE_SOON

    def test_no_history_is_due_soon(self):
        assert classify(DAILY_9, None, now=utc(2024, 1, 2, 10, 0)) == CheckInStatus.DUE_SOON

    def test_monotonic_in_time(self):
        order = {CheckInStatus.COMPLIANT: 0, CheckInStatus.DUE_SOON: 1, CheckInStatus.OVERDUE: 2}
        seen = []
        for minutes in range(0, 30 * 60, 7):
            seen.append(order[classify(DAILY_9, self.last, now=self.last + timedelta(minutes=minutes))])
        assert seen == sorted(seen)
        assert seen[-1] == 2


@pytest.mark.parametrize("remaining,expected", [
    (timedelta(minutes=-1), "Overdue"),
    (timedelta(seconds=59), "0m"),
    (timedelta(minutes=45), "45m"),
    (timedelta(hours=3, minutes=5), "3h 5m"),
    (timedelta(hours=24), "24h 0m"),
    (timedelta(hours=25), "1 day"),
    (timedelta(hours=49), "2 days"),
])
def test_format_time_remaining(remaining, expected):
    assert format_time_remaining(remaining) == expected
