from datetime import date, datetime

from pydantic import BaseModel, Field

from attendance.types import LocationType, ShiftType, ViolationType


class LocationSampleSchema(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy_meters: float = Field(ge=0)
    captured_at: datetime | None = None  # Defaults to the request timestamp
    altitude: float | None = None
    speed_mps: float | None = None
    is_mock: bool = False


class DeviceFingerprintSchema(BaseModel):
    user_agent: str = ""
    screen_resolution: str = ""  # "1920x1080"
    timezone: str = ""
    language: str = ""
    platform: str = ""
    hardware_concurrency: int = 0
    device_memory: float | None = None
    color_depth: int = 0
    pixel_ratio: float = 1.0
    touch_support: bool = False
    vendor: str = ""


class ClockInBody(BaseModel):
    mode: LocationType
    fingerprint: DeviceFingerprintSchema
    location: LocationSampleSchema | None = None
    timestamp: datetime | None = None  # Server time when omitted
    purpose: str | None = None  # Field trip purpose


class ClockOutBody(BaseModel):
    location: LocationSampleSchema | None = None
    mode: LocationType | None = None
    timestamp: datetime | None = None
    overtime_approved: bool = False
    overtime_start_time: datetime | None = None
    forced: bool = False  # HR only


class AttendanceEventSchema(BaseModel):
    event_id: str | None
    employee_id: str
    clock_in_time: str
    clock_out_time: str | None = None
    location_type: LocationType
    shift_type: ShiftType
    is_late: bool
    late_by_minutes: int
    is_night_shift: bool
    night_shift_hours: float
    overtime_hours: float
    total_hours: float | None = None
    early_closure: bool
    auto_clocked_out: bool
    within_geofence: bool | None = None
    geofence_distance_meters: float | None = None
    integrity_confidence: int | None = None
    warnings: list[str] = []


class ChargeSchema(BaseModel):
    charge_id: str | None
    employee_id: str
    attendance_event_id: str | None = None
    charge_type: str
    base_amount: float
    multiplier_applied: float
    final_amount: float
    charge_date: str  # ISO date string: "2026-01-20"
    status: str
    is_escalated: bool


class ClockResultResponse(BaseModel):
    status: str  # "accepted", "security_blocked", "geofence_blocked", "invariant_violation", "in_progress"
    event: AttendanceEventSchema | None = None
    charges: list[ChargeSchema] = []
    warnings: list[str] = []
    message: str = ""
    conflicting_event: AttendanceEventSchema | None = None


class ShiftResolutionResponse(BaseModel):
    employee_id: str
    date: str
    shift_type: ShiftType
    source: str  # "assignment", "pattern", "default"
    warnings: list[str] = []
    night_ratio: float | None = None


class ChargePreviewRequest(BaseModel):
    employee_id: str
    violation_type: ViolationType
    occurred_at: datetime
    base_amount: float | None = Field(default=None, ge=0)  # Rule amount when omitted


class ChargePreviewResponse(BaseModel):
    employee_id: str
    violation_type: ViolationType
    tier_multiplier: float
    final_amount: float
    base_amount: float
    ordinal: int
    rule_applied: bool


class ChargeActionRequest(BaseModel):
    reason: str | None = None


class ResolveDisputeRequest(BaseModel):
    resolution: str
    waive: bool = False


class AbsenceSweepRequest(BaseModel):
    target_date: date
    employee_ids: list[str]


class AbsenceSweepResponse(BaseModel):
    target_date: str
    skipped: bool
    skip_reason: str | None = None
    charges: list[ChargeSchema] = []
    absent: list[str] = []
    present: list[str] = []
    excluded: list[str] = []
    already_charged: list[str] = []
    errors: dict[str, str] = {}


class AutoClockoutSweepRequest(BaseModel):
    now: datetime | None = None


class AutoClockoutSweepResponse(BaseModel):
    run_at: str
    day_sessions_closed: list[AttendanceEventSchema] = []
    night_sessions_closed: list[AttendanceEventSchema] = []
    charges: list[ChargeSchema] = []
    errors: dict[str, str] = {}
