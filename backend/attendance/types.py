"""Type definitions for the attendance engine."""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Optional


class ShiftType(str, Enum):
    """Shift policy that applies to an employee on a given day."""
    DAY = "day"
    NIGHT = "night"
    ROTATING = "rotating"


class LocationType(str, Enum):
    """Where a session is worked from."""
    OFFICE = "office"
    FIELD = "field"


class ViolationType(str, Enum):
    """Violation kinds that can be escalated."""
    LATE_ARRIVAL = "late_arrival"
    ABSENCE = "absence"
    EARLY_DEPARTURE = "early_departure"
    BREAK_VIOLATION = "break_violation"


class ChargeType(str, Enum):
    """Kinds of monetary charges written to the ledger."""
    LATE_ARRIVAL = "late_arrival"
    ABSENCE = "absence"
    EARLY_DEPARTURE = "early_departure"
    BREAK_VIOLATION = "break_violation"
    CONSECUTIVE_AUTO_CLOCKOUT = "consecutive_auto_clockout"


class ChargeStatus(str, Enum):
    """Charge lifecycle states."""
    PENDING = "pending"
    WAIVED = "waived"
    DISPUTED = "disputed"
    PAID = "paid"


class TripStatus(str, Enum):
    """Field trip lifecycle states."""
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class ClockStatus(str, Enum):
    """Outcome of a clock-in or clock-out attempt."""
    ACCEPTED = "accepted"
    SECURITY_BLOCKED = "security_blocked"
    GEOFENCE_BLOCKED = "geofence_blocked"
    INVARIANT_VIOLATION = "invariant_violation"
    IN_PROGRESS = "in_progress"


@dataclass
class AttendanceRule:
    """Versioned snapshot of the active attendance rule."""
    work_start: time = time(8, 0)
    work_end: time = time(17, 0)
    grace_period_minutes: int = 15
    late_threshold_minutes: int = 30  # Reporting tier only
    late_charge_amount: float = 0.0
    absence_charge_amount: float = 0.0
    early_closure_charge_amount: float = 0.0
    night_shift_start: time = time(22, 0)
    night_shift_end: time = time(6, 0)
    overtime_rate: float = 1.5
    night_shift_rate: float = 1.25
    is_active: bool = True

    rule_id: Optional[str] = None
    version: int = 1
    minimum_work_hours: float = 7.0
    auto_clockout_deadline: time = time(19, 0)
    consecutive_auto_clockout_charge: float = 0.0
    skip_weekends: bool = True

    @classmethod
    def from_doc(cls, doc) -> "AttendanceRule":
        """Create from an AttendanceRuleDoc."""
        from utils.time import parse_time_of_day

        return cls(
            work_start=parse_time_of_day(doc.work_start_time),
            work_end=parse_time_of_day(doc.work_end_time),
            grace_period_minutes=doc.grace_period_minutes,
            late_threshold_minutes=doc.late_threshold_minutes,
            late_charge_amount=doc.late_charge_amount,
            absence_charge_amount=doc.absence_charge_amount,
            early_closure_charge_amount=doc.early_closure_charge_amount,
            night_shift_start=parse_time_of_day(doc.night_shift_start_time),
            night_shift_end=parse_time_of_day(doc.night_shift_end_time),
            overtime_rate=doc.overtime_rate,
            night_shift_rate=doc.night_shift_rate,
            is_active=doc.is_active,
            rule_id=str(doc.id) if doc.id is not None else None,
            version=doc.version,
            minimum_work_hours=doc.minimum_work_hours,
            auto_clockout_deadline=parse_time_of_day(doc.auto_clockout_deadline),
            consecutive_auto_clockout_charge=doc.consecutive_auto_clockout_charge,
            skip_weekends=doc.skip_weekends,
        )


@dataclass
class ShiftAssignment:
    """Explicit HR assignment of a shift type over an inclusive date range."""
    employee_id: str
    shift_type: ShiftType
    start_date: date
    end_date: date
    is_active: bool = True
    created_at: Optional[datetime] = None
    assignment_id: Optional[str] = None

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class EscalationTier:
    """Multiplier applied from the Nth violation in a streak onwards."""
    occurrence_count: int
    multiplier: float


@dataclass
class EscalationRule:
    """Escalation policy for one violation type."""
    violation_type: ViolationType
    lookback_period_days: int = 30
    reset_after_days: Optional[int] = None
    tiers: list[EscalationTier] = field(default_factory=list)
    is_active: bool = True

    def __post_init__(self):
        self.tiers = sorted(self.tiers, key=lambda t: t.occurrence_count)

    @classmethod
    def from_doc(cls, doc) -> "EscalationRule":
        """Create from an EscalationRuleDoc."""
        return cls(
            violation_type=ViolationType(doc.violation_type),
            lookback_period_days=doc.lookback_period_days,
            reset_after_days=doc.reset_after_days,
            tiers=[EscalationTier(t.occurrence_count, t.multiplier) for t in doc.tiers],
            is_active=doc.is_active,
        )


@dataclass
class AttendanceEvent:
    """A clock log: created at clock-in, closed once at clock-out."""
    employee_id: str
    clock_in_time: datetime
    location_type: LocationType
    clock_out_time: Optional[datetime] = None
    is_late: bool = False
    late_by_minutes: int = 0
    is_night_shift: bool = False
    night_shift_hours: float = 0.0
    overtime_hours: float = 0.0
    within_geofence: Optional[bool] = None
    geofence_distance_meters: Optional[float] = None

    event_id: Optional[str] = None
    shift_type: ShiftType = ShiftType.DAY
    total_hours: Optional[float] = None
    overtime_approved: bool = False
    overtime_start_time: Optional[datetime] = None
    early_closure: bool = False
    auto_clocked_out: bool = False
    site_id: Optional[str] = None
    integrity_confidence: Optional[int] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.clock_out_time is None

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "event_id": self.event_id,
            "employee_id": self.employee_id,
            "clock_in_time": self.clock_in_time.isoformat(),
            "clock_out_time": self.clock_out_time.isoformat() if self.clock_out_time else None,
            "location_type": self.location_type.value,
            "shift_type": self.shift_type.value,
            "is_late": self.is_late,
            "late_by_minutes": self.late_by_minutes,
            "is_night_shift": self.is_night_shift,
            "night_shift_hours": self.night_shift_hours,
            "overtime_hours": self.overtime_hours,
            "total_hours": self.total_hours,
            "early_closure": self.early_closure,
            "auto_clocked_out": self.auto_clocked_out,
            "within_geofence": self.within_geofence,
            "geofence_distance_meters": self.geofence_distance_meters,
            "integrity_confidence": self.integrity_confidence,
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class ViolationRecord:
    """A past violation, derived from stored events and charges."""
    employee_id: str
    violation_type: ViolationType
    occurred_at: datetime
    ordinal_within_window: int = 0


@dataclass
class Charge:
    """A monetary charge raised against an employee."""
    employee_id: str
    charge_type: ChargeType
    base_amount: float
    multiplier_applied: float
    final_amount: float
    charge_date: date
    attendance_event_id: Optional[str] = None
    status: ChargeStatus = ChargeStatus.PENDING

    charge_id: Optional[str] = None
    waiver_reason: Optional[str] = None
    waived_by: Optional[str] = None
    dispute_reason: Optional[str] = None
    dispute_resolution: Optional[str] = None

    @property
    def is_escalated(self) -> bool:
        return self.multiplier_applied > 1

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "charge_id": self.charge_id,
            "employee_id": self.employee_id,
            "attendance_event_id": self.attendance_event_id,
            "charge_type": self.charge_type.value,
            "base_amount": self.base_amount,
            "multiplier_applied": self.multiplier_applied,
            "final_amount": self.final_amount,
            "charge_date": self.charge_date.isoformat(),
            "status": self.status.value,
            "is_escalated": self.is_escalated,
        }


@dataclass
class FieldTrip:
    """A field work trip; an active trip is closed when the employee returns to office."""
    employee_id: str
    start_time: datetime
    status: TripStatus = TripStatus.ACTIVE
    end_time: Optional[datetime] = None
    purpose: Optional[str] = None
    notes: Optional[str] = None
    trip_id: Optional[str] = None
    attendance_event_id: Optional[str] = None


@dataclass
class AuditFact:
    """Who did what to which record, and why."""
    actor: str
    action: str
    target: str
    reason: Optional[str] = None
    occurred_at: Optional[datetime] = None
    details: dict = field(default_factory=dict)


@dataclass
class LocationSample:
    """A GPS fix reported by the device."""
    latitude: float
    longitude: float
    accuracy_meters: float
    captured_at: datetime
    altitude: Optional[float] = None
    speed_mps: Optional[float] = None
    is_mock: bool = False


FINGERPRINT_FIELDS = (
    "user_agent",
    "screen_resolution",
    "timezone",
    "platform",
    "hardware_concurrency",
    "device_memory",
    "color_depth",
    "pixel_ratio",
    "touch_support",
    "vendor",
    "language",
)


@dataclass
class DeviceFingerprint:
    """Device characteristics reported by the client."""
    user_agent: str = ""
    screen_resolution: str = ""
    timezone: str = ""
    language: str = ""
    platform: str = ""
    hardware_concurrency: int = 0
    device_memory: Optional[float] = None
    color_depth: int = 0
    pixel_ratio: float = 1.0
    touch_support: bool = False
    vendor: str = ""

    @property
    def fingerprint_id(self) -> str:
        """SHA-256 over the identifying fields (language excluded)."""
        payload = {name: getattr(self, name) for name in FINGERPRINT_FIELDS if name != "language"}
        encoded = json.dumps(payload, sort_keys=True).encode("utf-8")
        return hashlib.sha256(encoded).hexdigest()

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in FINGERPRINT_FIELDS}


@dataclass
class Site:
    """An authorized work site with a circular geofence."""
    site_id: str
    name: str
    latitude: float
    longitude: float
    radius_meters: float
    is_active: bool = True


@dataclass
class ClockInRequest:
    """Input to the clock-in flow."""
    employee_id: str
    mode: LocationType
    timestamp: datetime
    fingerprint: DeviceFingerprint
    location: Optional[LocationSample] = None
    purpose: Optional[str] = None  # Field trip purpose


@dataclass
class ClockOutRequest:
    """Input to the clock-out flow."""
    employee_id: str
    timestamp: datetime
    location: Optional[LocationSample] = None
    mode: Optional[LocationType] = None
    overtime_approved: bool = False
    overtime_start_time: Optional[datetime] = None
    forced: bool = False


@dataclass
class ClockResult:
    """Result of a clock-in or clock-out attempt."""
    status: ClockStatus
    event: Optional[AttendanceEvent] = None
    charges: list[Charge] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    message: str = ""
    conflicting_event: Optional[AttendanceEvent] = None

    @property
    def accepted(self) -> bool:
        return self.status == ClockStatus.ACCEPTED

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "status": self.status.value,
            "event": self.event.to_dict() if self.event else None,
            "charges": [c.to_dict() for c in self.charges],
            "warnings": list(self.warnings),
            "message": self.message,
            "conflicting_event": self.conflicting_event.to_dict() if self.conflicting_event else None,
        }
