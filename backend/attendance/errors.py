"""Exceptions raised by the attendance engine."""

from dataclasses import dataclass
from datetime import date
from typing import Optional


class AttendanceError(Exception):
    """Base exception for attendance rule violations and operational failures."""


class SecurityBlocked(AttendanceError):
    """Integrity confidence fell below the hard threshold. Retry with a better signal."""

    def __init__(self, message: str, confidence_score: int, warnings: Optional[list[str]] = None):
        super().__init__(message)
        self.confidence_score = confidence_score
        self.warnings = warnings or []


class GeofenceBlocked(AttendanceError):
    """Office clock-in from outside the configured site."""

    def __init__(self, message: str, distance_meters: float, radius_meters: float):
        super().__init__(message)
        self.distance_meters = distance_meters
        self.radius_meters = radius_meters


class InvariantViolation(AttendanceError):
    """A per-day session invariant would be broken. Carries the conflicting record."""

    def __init__(self, message: str, conflicting_event=None):
        super().__init__(message)
        self.conflicting_event = conflicting_event


class NoOpenEvent(InvariantViolation):
    """Clock-out attempted with no open session."""


class ConfigMissing(AttendanceError):
    """No active rule is configured. The engine fails closed."""


class IntegrityCheckTimeout(AttendanceError):
    """An external signal source did not answer in time."""


class ClockInInProgress(AttendanceError):
    """Another clock-in for the same employee and day is still running."""


class InvalidChargeTransition(AttendanceError):
    """A charge status change not allowed by the lifecycle."""


class SinkWriteFailed(AttendanceError):
    """The event sink did not acknowledge a write."""


@dataclass
class ShiftAmbiguous:
    """Data-quality warning: overlapping active shift assignments. Never raised."""
    employee_id: str
    day: date
    assignment_ids: list[Optional[str]]
    chosen_id: Optional[str]

    @property
    def message(self) -> str:
        return (
            f"{len(self.assignment_ids)} active shift assignments overlap for "
            f"{self.employee_id} on {self.day.isoformat()}; using {self.chosen_id}"
        )


class ChargeNotFound(AttendanceError):
    """No charge exists with the given id."""
