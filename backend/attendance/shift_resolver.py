"""Shift resolution: explicit HR assignment first, clock-in pattern second."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

import settings
from utils.time import day_bounds, in_time_window, minute_of_day

from .errors import ShiftAmbiguous
from .interfaces import AttendanceStore, RuleConfigProvider
from .types import AttendanceRule, ShiftAssignment, ShiftType

logger = logging.getLogger(__name__)


@dataclass
class ShiftResolution:
    """Resolved shift plus where it came from."""
    shift_type: ShiftType
    source: str  # "assignment", "pattern", "default"
    warnings: list[ShiftAmbiguous] = field(default_factory=list)
    night_ratio: Optional[float] = None


class ShiftStrategy(ABC):
    """One link in the resolution chain. Returns None to defer to the next link."""

    @abstractmethod
    async def resolve(
        self,
        employee_id: str,
        day: date,
        rule: AttendanceRule,
        tzinfo=None,
    ) -> Optional[ShiftResolution]:
        pass


class ExplicitAssignmentStrategy(ShiftStrategy):
    """Uses active HR shift assignments covering the day."""

    def __init__(self, provider: RuleConfigProvider):
        self.provider = provider

    async def resolve(self, employee_id, day, rule, tzinfo=None) -> Optional[ShiftResolution]:
        assignments = await self.provider.get_shift_assignments(employee_id, day, day)
        matches = [a for a in assignments if a.is_active and a.covers(day)]
        if not matches:
            return None

        chosen = pick_latest_assignment(matches)
        resolution = ShiftResolution(shift_type=chosen.shift_type, source="assignment")

        if len(matches) > 1:
            warning = ShiftAmbiguous(
                employee_id=employee_id,
                day=day,
                assignment_ids=[a.assignment_id for a in matches],
                chosen_id=chosen.assignment_id,
            )
            logger.warning(warning.message)
            resolution.warnings.append(warning)

        logger.debug(f"Employee {employee_id}: explicit assignment -> {chosen.shift_type.value}")
        return resolution


class PatternDetectionStrategy(ShiftStrategy):
    """Classifies the employee from recent clock-ins against the night window."""

    def __init__(
        self,
        store: AttendanceStore,
        lookback_days: int = settings.PATTERN_LOOKBACK_DAYS,
        night_ratio: float = settings.NIGHT_PATTERN_RATIO,
    ):
        self.store = store
        self.lookback_days = lookback_days
        self.night_ratio = night_ratio

    async def resolve(self, employee_id, day, rule, tzinfo=None) -> Optional[ShiftResolution]:
        window_start, _ = day_bounds(day - timedelta(days=self.lookback_days), tzinfo)
        window_end, _ = day_bounds(day, tzinfo)
        events = await self.store.get_events(employee_id, window_start, window_end)
        if not events:
            return None

        night_count = sum(
            1 for e in events
            if in_time_window(minute_of_day(e.clock_in_time), rule.night_shift_start, rule.night_shift_end)
        )
        ratio = night_count / len(events)
        shift_type = ShiftType.NIGHT if ratio >= self.night_ratio else ShiftType.DAY

        logger.debug(
            f"Employee {employee_id}: pattern detected {shift_type.value} "
            f"({night_count}/{len(events)} night clock-ins)"
        )
        return ShiftResolution(shift_type=shift_type, source="pattern", night_ratio=ratio)


def pick_latest_assignment(assignments: list[ShiftAssignment]) -> ShiftAssignment:
    """Most recently created assignment wins; ties break on assignment id."""
    return max(
        assignments,
        key=lambda a: (
            a.created_at is not None,
            a.created_at.timestamp() if a.created_at else 0.0,
            a.assignment_id or "",
        ),
    )


class ShiftResolver:
    """
    Resolves the effective shift type for an employee on a date.

    Runs each strategy in order and returns the first answer; falls back to a
    day shift so an unknown employee is never charged against a night policy.
    """

    def __init__(self, strategies: list[ShiftStrategy]):
        self.strategies = strategies

    @classmethod
    def default(cls, provider: RuleConfigProvider, store: AttendanceStore) -> "ShiftResolver":
        return cls([ExplicitAssignmentStrategy(provider), PatternDetectionStrategy(store)])

    async def resolve(self, employee_id: str, day: date, rule: AttendanceRule, tzinfo=None) -> ShiftType:
        resolution = await self.resolve_detailed(employee_id, day, rule, tzinfo)
        return resolution.shift_type

    async def resolve_detailed(
        self,
        employee_id: str,
        day: date,
        rule: AttendanceRule,
        tzinfo=None,
    ) -> ShiftResolution:
        for strategy in self.strategies:
            resolution = await strategy.resolve(employee_id, day, rule, tzinfo)
            if resolution is not None:
                return resolution

        logger.debug(f"Employee {employee_id}: no assignment or history -> day")
        return ShiftResolution(shift_type=ShiftType.DAY, source="default")
