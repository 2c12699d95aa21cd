"""Unit tests for lateness, night-shift and worked-hours evaluation."""

import pytest
from dataclasses import replace
from datetime import time, timedelta, timezone

from attendance.lateness import LatenessEvaluator, is_in_night_window, lateness_tier
from attendance.types import ShiftType

from conftest import MONDAY, at


@pytest.fixture
def evaluator():
    return LatenessEvaluator()


class TestDayShiftLateness:

    def test_exactly_at_grace_deadline_is_on_time(self, evaluator, rule):
        result = evaluator.evaluate(at(MONDAY, 8, 15), rule, ShiftType.DAY)

        assert result.is_late is False
        assert result.late_by_minutes == 0

    def test_one_minute_past_grace_is_late(self, evaluator, rule):
        result = evaluator.evaluate(at(MONDAY, 8, 16), rule, ShiftType.DAY)

        assert result.is_late is True
        assert result.late_by_minutes == 16

    def test_one_second_past_grace_is_late(self, evaluator, rule):
        result = evaluator.evaluate(at(MONDAY, 8, 15, 1), rule, ShiftType.DAY)

        assert result.is_late is True
        assert result.late_by_minutes == 15

    def test_early_arrival_is_on_time(self, evaluator, rule):
        result = evaluator.evaluate(at(MONDAY, 7, 30), rule, ShiftType.DAY)

        assert result.is_late is False
        assert result.scheduled_start == at(MONDAY, 8, 0)

    def test_zero_grace(self, evaluator, rule):
        strict = replace(rule, grace_period_minutes=0)

        assert evaluator.evaluate(at(MONDAY, 8, 0), strict, ShiftType.DAY).is_late is False
        assert evaluator.evaluate(at(MONDAY, 8, 1), strict, ShiftType.DAY).late_by_minutes == 1

    def test_threshold_does_not_change_decision(self, evaluator, rule):
        result = evaluator.evaluate(at(MONDAY, 8, 20), rule, ShiftType.DAY)

        assert result.is_late is True
        assert lateness_tier(result.late_by_minutes, rule) == "late"
        assert lateness_tier(45, rule) == "severely_late"
        assert lateness_tier(10, rule) == "on_time"


class TestNightShiftLateness:

    def test_night_shift_measured_from_night_start(self, evaluator, rule):
        result = evaluator.evaluate(at(MONDAY, 22, 10), rule, ShiftType.NIGHT)

        assert result.is_late is False
        assert result.is_night_shift is True
        assert result.scheduled_start == at(MONDAY, 22, 0)

    def test_after_midnight_counts_against_previous_night(self, evaluator, rule):
        result = evaluator.evaluate(at(MONDAY, 0, 30), rule, ShiftType.NIGHT)

        assert result.scheduled_start == at(MONDAY - timedelta(days=1), 22, 0)
        assert result.is_late is True
        assert result.late_by_minutes == 150

    def test_rotating_uses_night_start_inside_window(self, evaluator, rule):
        result = evaluator.evaluate(at(MONDAY, 22, 30), rule, ShiftType.ROTATING)

        assert result.scheduled_start == at(MONDAY, 22, 0)
        assert result.is_late is True

    def test_rotating_uses_work_start_outside_window(self, evaluator, rule):
        result = evaluator.evaluate(at(MONDAY, 8, 5), rule, ShiftType.ROTATING)

        assert result.scheduled_start == at(MONDAY, 8, 0)
        assert result.is_late is False


class TestNightWindow:

    def test_23_00_inside(self, rule):
        assert is_in_night_window(at(MONDAY, 23, 0), rule)

    def test_05_59_inside(self, rule):
        assert is_in_night_window(at(MONDAY, 5, 59), rule)

    def test_06_00_outside(self, rule):
        assert not is_in_night_window(at(MONDAY, 6, 0), rule)

    def test_22_00_inside(self, rule):
        assert is_in_night_window(at(MONDAY, 22, 0), rule)

    def test_non_wrapping_window(self, rule):
        evening = replace(rule, night_shift_start=time(18, 0), night_shift_end=time(23, 0))

        assert is_in_night_window(at(MONDAY, 18, 0), evening)
        assert not is_in_night_window(at(MONDAY, 23, 0), evening)


class TestHours:

    def test_full_day_no_overtime_no_early_closure(self, evaluator, rule):
        result = evaluator.evaluate_overtime_and_hours(
            at(MONDAY, 8, 0), at(MONDAY, 17, 0), False, None, rule,
        )

        assert result.total_hours == 9.0
        assert result.overtime_hours == 0.0
        assert result.night_shift_hours == 0.0
        assert result.early_closure is False

    def test_unapproved_overtime_not_counted(self, evaluator, rule):
        result = evaluator.evaluate_overtime_and_hours(
            at(MONDAY, 8, 0), at(MONDAY, 20, 0), False, at(MONDAY, 17, 0), rule,
        )

        assert result.total_hours == 12.0
        assert result.overtime_hours == 0.0

    def test_approved_overtime_from_start_time(self, evaluator, rule):
        result = evaluator.evaluate_overtime_and_hours(
            at(MONDAY, 8, 0), at(MONDAY, 19, 30), True, at(MONDAY, 17, 0), rule,
        )

        assert result.overtime_hours == 2.5
        assert result.premium_hours == round(2.5 * rule.overtime_rate, 2)

    def test_overtime_never_negative(self, evaluator, rule):
        result = evaluator.evaluate_overtime_and_hours(
            at(MONDAY, 8, 0), at(MONDAY, 16, 0), True, at(MONDAY, 17, 0), rule,
        )

        assert result.overtime_hours == 0.0

    def test_short_day_is_early_closure(self, evaluator, rule):
        result = evaluator.evaluate_overtime_and_hours(
            at(MONDAY, 8, 0), at(MONDAY, 14, 0), False, None, rule,
        )

        assert result.total_hours == 6.0
        assert result.early_closure is True

    def test_forced_close_is_not_early_closure(self, evaluator, rule):
        result = evaluator.evaluate_overtime_and_hours(
            at(MONDAY, 8, 0), at(MONDAY, 14, 0), False, None, rule, forced=True,
        )

        assert result.early_closure is False

    def test_night_hours_across_midnight(self, evaluator, rule):
        result = evaluator.evaluate_overtime_and_hours(
            at(MONDAY, 21, 0), at(MONDAY + timedelta(days=1), 7, 0), False, None, rule,
        )

        assert result.total_hours == 10.0
        assert result.night_shift_hours == 8.0
        assert result.premium_hours == round(8.0 * rule.night_shift_rate, 2)

    def test_early_morning_night_hours(self, evaluator, rule):
        result = evaluator.evaluate_overtime_and_hours(
            at(MONDAY, 4, 0), at(MONDAY, 12, 0), False, None, rule,
        )

        assert result.night_shift_hours == 2.0

    def test_identical_inputs_give_identical_outputs(self, evaluator, rule):
        args = (at(MONDAY, 7, 55), at(MONDAY, 18, 20), True, at(MONDAY, 17, 0), rule)

        assert evaluator.evaluate_overtime_and_hours(*args) == evaluator.evaluate_overtime_and_hours(*args)


class TestUtcOffsets:

    PLUS_ONE = timezone(timedelta(hours=1))

    def test_same_instant_same_verdict(self, evaluator, rule):
        utc = evaluator.evaluate(at(MONDAY, 8, 10), rule, ShiftType.DAY)
        offset = evaluator.evaluate(at(MONDAY, 8, 10).astimezone(self.PLUS_ONE), rule, ShiftType.DAY)

        assert offset == utc
        assert offset.is_late is False
        assert offset.scheduled_start == at(MONDAY, 8, 0)

    def test_late_verdict_independent_of_offset(self, evaluator, rule):
        offset = evaluator.evaluate(at(MONDAY, 8, 40).astimezone(self.PLUS_ONE), rule, ShiftType.DAY)

        assert offset.is_late is True
        assert offset.late_by_minutes == 40

    def test_night_window_read_in_utc(self, rule):
        # 23:30 at +02:00 is 21:30 UTC, before the 22:00 window start
        evening = at(MONDAY, 21, 30).astimezone(timezone(timedelta(hours=2)))

        assert evening.hour == 23
        assert not is_in_night_window(evening, rule)

    def test_hours_independent_of_offset(self, evaluator, rule):
        utc = evaluator.evaluate_overtime_and_hours(at(MONDAY, 20, 0), at(MONDAY, 23, 0), False, None, rule)
        offset = evaluator.evaluate_overtime_and_hours(
            at(MONDAY, 20, 0).astimezone(self.PLUS_ONE), at(MONDAY, 23, 0), False, None, rule,
        )

        assert offset == utc
        assert offset.night_shift_hours == 1.0
