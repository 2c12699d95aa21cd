from datetime import date, datetime
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field
from pymongo import IndexModel

from attendance.types import (
    AttendanceEvent,
    AuditFact,
    Charge,
    ChargeStatus,
    ChargeType,
    DeviceFingerprint,
    FieldTrip,
    LocationSample,
    LocationType,
    ShiftAssignment,
    ShiftType,
    Site,
    TripStatus,
)
from utils import utc_now


# ============================================================================
# Rule configuration
# ============================================================================


class AttendanceRuleDoc(Document):
    """Attendance policy. Exactly one document should be active."""
    work_start_time: str = "08:00"
    work_end_time: str = "17:00"
    grace_period_minutes: int = 15
    late_threshold_minutes: int = 30
    late_charge_amount: float = 0.0
    absence_charge_amount: float = 0.0
    early_closure_charge_amount: float = 0.0
    night_shift_start_time: str = "22:00"
    night_shift_end_time: str = "06:00"
    overtime_rate: float = 1.5
    night_shift_rate: float = 1.25
    minimum_work_hours: float = 7.0
    auto_clockout_deadline: str = "19:00"
    consecutive_auto_clockout_charge: float = 0.0
    skip_weekends: bool = True
    is_active: bool = True
    version: int = 1
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "attendance_rules"
        indexes = [
            [("is_active", 1), ("updated_at", -1)],
        ]


class EscalationTierEmbed(BaseModel):
    occurrence_count: int
    multiplier: float


class EscalationRuleDoc(Document):
    """Escalation tiers for one violation type."""
    violation_type: Indexed(str)  # "late_arrival", "absence", "early_departure", "break_violation"
    lookback_period_days: int = 30
    reset_after_days: Optional[int] = None
    tiers: list[EscalationTierEmbed] = []
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "escalation_rules"


class ShiftAssignmentDoc(Document):
    """HR shift assignment over an inclusive ISO date range."""
    employee_id: Indexed(str)
    shift_type: str  # "day", "night", "rotating"
    start_date: str  # ISO: "2026-01-20"
    end_date: str
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "shift_assignments"
        indexes = [
            IndexModel([("employee_id", 1), ("start_date", 1), ("end_date", 1)]),
        ]

    def to_domain(self) -> ShiftAssignment:
        return ShiftAssignment(
            employee_id=self.employee_id,
            shift_type=ShiftType(self.shift_type),
            start_date=date.fromisoformat(self.start_date),
            end_date=date.fromisoformat(self.end_date),
            is_active=self.is_active,
            created_at=self.created_at,
            assignment_id=str(self.id) if self.id is not None else None,
        )


class SiteDoc(Document):
    """Authorized work site. An empty employee list means the site is open to everyone."""
    site_id: Indexed(str, unique=True)
    name: str
    latitude: float
    longitude: float
    radius_meters: float = 100.0
    is_active: bool = True
    employee_ids: list[str] = []

    class Settings:
        name = "sites"

    def to_domain(self) -> Site:
        return Site(
            site_id=self.site_id,
            name=self.name,
            latitude=self.latitude,
            longitude=self.longitude,
            radius_meters=self.radius_meters,
            is_active=self.is_active,
        )


# ============================================================================
# Attendance records
# ============================================================================


class AttendanceEventDoc(Document):
    """
    One clock log. Keyed by the engine-assigned event_id.
    Created at clock-in and updated once at clock-out.
    """
    event_id: Indexed(str, unique=True)
    employee_id: Indexed(str)
    clock_in_time: datetime
    clock_out_time: Optional[datetime] = None
    location_type: str  # "office", "field"
    shift_type: str = "day"
    is_late: bool = False
    late_by_minutes: int = 0
    is_night_shift: bool = False
    night_shift_hours: float = 0.0
    overtime_hours: float = 0.0
    total_hours: Optional[float] = None
    overtime_approved: bool = False
    overtime_start_time: Optional[datetime] = None
    early_closure: bool = False
    auto_clocked_out: bool = False
    within_geofence: Optional[bool] = None
    geofence_distance_meters: Optional[float] = None
    site_id: Optional[str] = None
    integrity_confidence: Optional[int] = None
    warnings: list[str] = []
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "attendance_events"
        indexes = [
            IndexModel([("employee_id", 1), ("clock_in_time", -1)]),
            IndexModel([("clock_out_time", 1)]),
        ]

    @classmethod
    def from_domain(cls, event: AttendanceEvent) -> "AttendanceEventDoc":
        return cls(
            event_id=event.event_id,
            employee_id=event.employee_id,
            clock_in_time=event.clock_in_time,
            clock_out_time=event.clock_out_time,
            location_type=event.location_type.value,
            shift_type=event.shift_type.value,
            is_late=event.is_late,
            late_by_minutes=event.late_by_minutes,
            is_night_shift=event.is_night_shift,
            night_shift_hours=event.night_shift_hours,
            overtime_hours=event.overtime_hours,
            total_hours=event.total_hours,
            overtime_approved=event.overtime_approved,
            overtime_start_time=event.overtime_start_time,
            early_closure=event.early_closure,
            auto_clocked_out=event.auto_clocked_out,
            within_geofence=event.within_geofence,
            geofence_distance_meters=event.geofence_distance_meters,
            site_id=event.site_id,
            integrity_confidence=event.integrity_confidence,
            warnings=list(event.warnings),
        )

    def to_domain(self) -> AttendanceEvent:
        return AttendanceEvent(
            event_id=self.event_id,
            employee_id=self.employee_id,
            clock_in_time=self.clock_in_time,
            clock_out_time=self.clock_out_time,
            location_type=LocationType(self.location_type),
            shift_type=ShiftType(self.shift_type),
            is_late=self.is_late,
            late_by_minutes=self.late_by_minutes,
            is_night_shift=self.is_night_shift,
            night_shift_hours=self.night_shift_hours,
            overtime_hours=self.overtime_hours,
            total_hours=self.total_hours,
            overtime_approved=self.overtime_approved,
            overtime_start_time=self.overtime_start_time,
            early_closure=self.early_closure,
            auto_clocked_out=self.auto_clocked_out,
            within_geofence=self.within_geofence,
            geofence_distance_meters=self.geofence_distance_meters,
            site_id=self.site_id,
            integrity_confidence=self.integrity_confidence,
            warnings=list(self.warnings),
        )


class FieldTripDoc(Document):
    trip_id: Indexed(str, unique=True)
    employee_id: Indexed(str)
    start_time: datetime
    end_time: Optional[datetime] = None
    status: str = "active"  # "active", "completed", "abandoned"
    purpose: Optional[str] = None
    notes: Optional[str] = None
    attendance_event_id: Optional[str] = None

    class Settings:
        name = "field_trips"
        indexes = [
            IndexModel([("employee_id", 1), ("status", 1)]),
        ]

    @classmethod
    def from_domain(cls, trip: FieldTrip) -> "FieldTripDoc":
        return cls(
            trip_id=trip.trip_id,
            employee_id=trip.employee_id,
            start_time=trip.start_time,
            end_time=trip.end_time,
            status=trip.status.value,
            purpose=trip.purpose,
            notes=trip.notes,
            attendance_event_id=trip.attendance_event_id,
        )

    def to_domain(self) -> FieldTrip:
        return FieldTrip(
            trip_id=self.trip_id,
            employee_id=self.employee_id,
            start_time=self.start_time,
            end_time=self.end_time,
            status=TripStatus(self.status),
            purpose=self.purpose,
            notes=self.notes,
            attendance_event_id=self.attendance_event_id,
        )


class ChargeDoc(Document):
    """
    Monetary charge. Keyed by the engine-assigned charge_id.
    Amounts are never edited after creation; only status fields change.
    """
    charge_id: Indexed(str, unique=True)
    employee_id: Indexed(str)
    attendance_event_id: Optional[str] = None
    charge_type: str
    base_amount: float
    multiplier_applied: float = 1.0
    final_amount: float
    is_escalated: bool = False
    charge_date: str  # ISO: "2026-01-20"
    status: str = "pending"  # "pending", "waived", "disputed", "paid"
    waiver_reason: Optional[str] = None
    waived_by: Optional[str] = None
    dispute_reason: Optional[str] = None
    dispute_resolution: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "charges"
        indexes = [
            IndexModel([("employee_id", 1), ("charge_type", 1), ("charge_date", 1)]),
            IndexModel([("status", 1)]),
        ]

    @classmethod
    def from_domain(cls, charge: Charge) -> "ChargeDoc":
        return cls(
            charge_id=charge.charge_id,
            employee_id=charge.employee_id,
            attendance_event_id=charge.attendance_event_id,
            charge_type=charge.charge_type.value,
            base_amount=charge.base_amount,
            multiplier_applied=charge.multiplier_applied,
            final_amount=charge.final_amount,
            is_escalated=charge.is_escalated,
            charge_date=charge.charge_date.isoformat(),
            status=charge.status.value,
            waiver_reason=charge.waiver_reason,
            waived_by=charge.waived_by,
            dispute_reason=charge.dispute_reason,
            dispute_resolution=charge.dispute_resolution,
        )

    def to_domain(self) -> Charge:
        return Charge(
            charge_id=self.charge_id,
            employee_id=self.employee_id,
            attendance_event_id=self.attendance_event_id,
            charge_type=ChargeType(self.charge_type),
            base_amount=self.base_amount,
            multiplier_applied=self.multiplier_applied,
            final_amount=self.final_amount,
            charge_date=date.fromisoformat(self.charge_date),
            status=ChargeStatus(self.status),
            waiver_reason=self.waiver_reason,
            waived_by=self.waived_by,
            dispute_reason=self.dispute_reason,
            dispute_resolution=self.dispute_resolution,
        )


class AuditFactDoc(Document):
    """Append-only audit trail of engine decisions and charge changes."""
    actor: str
    action: str
    target: str
    reason: Optional[str] = None
    details: dict = {}
    occurred_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "audit_facts"
        indexes = [
            IndexModel([("target", 1)]),
            IndexModel([("occurred_at", -1)]),
            IndexModel([("actor", 1), ("occurred_at", -1)]),
        ]

    @classmethod
    def from_domain(cls, fact: AuditFact) -> "AuditFactDoc":
        return cls(
            actor=fact.actor,
            action=fact.action,
            target=fact.target,
            reason=fact.reason,
            details=dict(fact.details),
            occurred_at=fact.occurred_at or utc_now(),
        )


# ============================================================================
# Integrity signals
# ============================================================================


class DeviceFingerprintDoc(Document):
    """Baseline device fingerprint, stored on an employee's first clock-in."""
    employee_id: Indexed(str, unique=True)
    fingerprint_id: str
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
    created_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "device_fingerprints"

    @classmethod
    def from_domain(cls, employee_id: str, fingerprint: DeviceFingerprint) -> "DeviceFingerprintDoc":
        return cls(employee_id=employee_id, fingerprint_id=fingerprint.fingerprint_id, **fingerprint.to_dict())

    def to_domain(self) -> DeviceFingerprint:
        return DeviceFingerprint(
            user_agent=self.user_agent,
            screen_resolution=self.screen_resolution,
            timezone=self.timezone,
            language=self.language,
            platform=self.platform,
            hardware_concurrency=self.hardware_concurrency,
            device_memory=self.device_memory,
            color_depth=self.color_depth,
            pixel_ratio=self.pixel_ratio,
            touch_support=self.touch_support,
            vendor=self.vendor,
        )


class LocationSampleDoc(Document):
    employee_id: Indexed(str)
    latitude: float
    longitude: float
    accuracy_meters: float
    captured_at: datetime
    altitude: Optional[float] = None
    speed_mps: Optional[float] = None
    is_mock: bool = False

    class Settings:
        name = "location_samples"
        indexes = [
            IndexModel([("employee_id", 1), ("captured_at", -1)]),
        ]

    @classmethod
    def from_domain(cls, employee_id: str, sample: LocationSample) -> "LocationSampleDoc":
        return cls(
            employee_id=employee_id,
            latitude=sample.latitude,
            longitude=sample.longitude,
            accuracy_meters=sample.accuracy_meters,
            captured_at=sample.captured_at,
            altitude=sample.altitude,
            speed_mps=sample.speed_mps,
            is_mock=sample.is_mock,
        )

    def to_domain(self) -> LocationSample:
        return LocationSample(
            latitude=self.latitude,
            longitude=self.longitude,
            accuracy_meters=self.accuracy_meters,
            captured_at=self.captured_at,
            altitude=self.altitude,
            speed_mps=self.speed_mps,
            is_mock=self.is_mock,
        )


DOCUMENT_MODELS = [
    AttendanceRuleDoc,
    EscalationRuleDoc,
    ShiftAssignmentDoc,
    SiteDoc,
    AttendanceEventDoc,
    FieldTripDoc,
    ChargeDoc,
    AuditFactDoc,
    DeviceFingerprintDoc,
    LocationSampleDoc,
]
