"""Attendance compliance and charge escalation engine."""

from .types import (
    AttendanceEvent,
    AttendanceRule,
    Charge,
    ChargeStatus,
    ChargeType,
    ClockInRequest,
    ClockOutRequest,
    ClockResult,
    ClockStatus,
    EscalationRule,
    EscalationTier,
    LocationType,
    ShiftType,
    ViolationType,
)
from .errors import (
    AttendanceError,
    ChargeNotFound,
    ConfigMissing,
    GeofenceBlocked,
    IntegrityCheckTimeout,
    InvalidChargeTransition,
    InvariantViolation,
    SecurityBlocked,
    ShiftAmbiguous,
    SinkWriteFailed,
)
from .authorizer import ClockEventAuthorizer
from .charges import ChargeLedger
from .escalation import ChargeEscalationEngine
from .geofence import GeofenceValidator
from .integrity import IntegrityGate
from .lateness import LatenessEvaluator
from .shift_resolver import ShiftResolver
from .sweeps import AutoClockoutSweep, DailyAbsenceSweep

__all__ = [
    "AttendanceEvent",
    "AttendanceRule",
    "Charge",
    "ChargeStatus",
    "ChargeType",
    "ClockInRequest",
    "ClockOutRequest",
    "ClockResult",
    "ClockStatus",
    "EscalationRule",
    "EscalationTier",
    "LocationType",
    "ShiftType",
    "ViolationType",
    "AttendanceError",
    "ChargeNotFound",
    "ConfigMissing",
    "GeofenceBlocked",
    "IntegrityCheckTimeout",
    "InvalidChargeTransition",
    "InvariantViolation",
    "SecurityBlocked",
    "ShiftAmbiguous",
    "SinkWriteFailed",
    "ClockEventAuthorizer",
    "ChargeLedger",
    "ChargeEscalationEngine",
    "GeofenceValidator",
    "IntegrityGate",
    "LatenessEvaluator",
    "ShiftResolver",
    "AutoClockoutSweep",
    "DailyAbsenceSweep",
]
