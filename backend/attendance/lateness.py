"""Lateness, night-shift and worked-hours evaluation."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from utils.time import at_time, ensure_aware, hours_between, in_time_window, minute_of_day

from .types import AttendanceRule, ShiftType


@dataclass
class LatenessResult:
    """Clock-in verdict."""
    is_late: bool
    late_by_minutes: int
    is_night_shift: bool
    night_shift_hours: float = 0.0
    scheduled_start: Optional[datetime] = None


@dataclass
class HoursResult:
    """Clock-out verdict."""
    total_hours: float
    overtime_hours: float
    night_shift_hours: float
    early_closure: bool = False
    premium_hours: float = 0.0


def is_in_night_window(moment: datetime, rule: AttendanceRule) -> bool:
    return in_time_window(minute_of_day(ensure_aware(moment)), rule.night_shift_start, rule.night_shift_end)


def lateness_tier(late_by_minutes: int, rule: AttendanceRule) -> str:
    """Reporting bucket; the late/not-late decision does not use the threshold."""
    if late_by_minutes <= rule.grace_period_minutes:
        return "on_time"
    if late_by_minutes <= rule.late_threshold_minutes:
        return "late"
    return "severely_late"


class LatenessEvaluator:
    """Evaluates clock-in lateness and clock-out hours against a rule snapshot."""

    def scheduled_start(self, clock_in_time: datetime, rule: AttendanceRule, shift_type: ShiftType) -> datetime:
        """
        Start of the shift the clock-in belongs to.

        Night shifts start at the night window start; a clock-in after
        midnight but before the window end belongs to the previous day's
        night shift. Rotating shifts follow whichever window the clock-in
        falls in. Shift times are read in UTC.
        """
        clock_in_time = ensure_aware(clock_in_time)
        tz = clock_in_time.tzinfo
        day = clock_in_time.date()
        in_night = is_in_night_window(clock_in_time, rule)

        if shift_type == ShiftType.NIGHT or (shift_type == ShiftType.ROTATING and in_night):
            wraps = minute_of_day(rule.night_shift_start) > minute_of_day(rule.night_shift_end)
            if wraps and minute_of_day(clock_in_time) < minute_of_day(rule.night_shift_end):
                day = day - timedelta(days=1)
            return at_time(day, rule.night_shift_start, tz)

        return at_time(day, rule.work_start, tz)

    def evaluate(self, clock_in_time: datetime, rule: AttendanceRule, shift_type: ShiftType) -> LatenessResult:
        clock_in_time = ensure_aware(clock_in_time)
        start = self.scheduled_start(clock_in_time, rule, shift_type)
        deadline = start + timedelta(minutes=rule.grace_period_minutes)

        is_late = clock_in_time > deadline
        # Measured from the scheduled start: grace forgives the charge, not the minutes
        late_by = round((clock_in_time - start).total_seconds() / 60) if is_late else 0

        return LatenessResult(
            is_late=is_late,
            late_by_minutes=late_by,
            is_night_shift=is_in_night_window(clock_in_time, rule),
            night_shift_hours=0.0,
            scheduled_start=start,
        )

    def night_hours(self, start: datetime, end: datetime, rule: AttendanceRule) -> float:
        """Hours of [start, end) that fall inside night windows on any day touched."""
        start, end = ensure_aware(start), ensure_aware(end)
        if end <= start:
            return 0.0

        tz = start.tzinfo
        wraps = minute_of_day(rule.night_shift_start) > minute_of_day(rule.night_shift_end)
        total = 0.0
        day = start.date() - timedelta(days=1)
        while day <= end.date():
            window_start = at_time(day, rule.night_shift_start, tz)
            window_end = at_time(day + timedelta(days=1) if wraps else day, rule.night_shift_end, tz)
            overlap_start = max(start, window_start)
            overlap_end = min(end, window_end)
            if overlap_end > overlap_start:
                total += hours_between(overlap_start, overlap_end)
            day += timedelta(days=1)
        return total

    def evaluate_overtime_and_hours(
        self,
        clock_in_time: datetime,
        clock_out_time: datetime,
        overtime_approved: bool,
        overtime_start_time: Optional[datetime],
        rule: AttendanceRule,
        forced: bool = False,
    ) -> HoursResult:
        clock_in_time, clock_out_time = ensure_aware(clock_in_time), ensure_aware(clock_out_time)
        overtime_start_time = ensure_aware(overtime_start_time)
        total = hours_between(clock_in_time, clock_out_time)

        # Unapproved extra time is not compensable overtime
        overtime = 0.0
        if overtime_approved and overtime_start_time is not None:
            overtime = hours_between(overtime_start_time, clock_out_time)

        night = self.night_hours(clock_in_time, clock_out_time, rule)

        return HoursResult(
            total_hours=round(total, 2),
            overtime_hours=round(overtime, 2),
            night_shift_hours=round(night, 2),
            early_closure=(not forced) and total < rule.minimum_work_hours,
            premium_hours=round(overtime * rule.overtime_rate + night * rule.night_shift_rate, 2),
        )
