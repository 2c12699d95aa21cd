from .database import init_db, close_db
from .models import (
    AttendanceRuleDoc,
    EscalationRuleDoc,
    EscalationTierEmbed,
    ShiftAssignmentDoc,
    SiteDoc,
    AttendanceEventDoc,
    FieldTripDoc,
    ChargeDoc,
    AuditFactDoc,
    DeviceFingerprintDoc,
    LocationSampleDoc,
)
from .providers import AttendanceServices, build_services

__all__ = [
    "init_db",
    "close_db",
    "AttendanceRuleDoc",
    "EscalationRuleDoc",
    "EscalationTierEmbed",
    "ShiftAssignmentDoc",
    "SiteDoc",
    "AttendanceEventDoc",
    "FieldTripDoc",
    "ChargeDoc",
    "AuditFactDoc",
    "DeviceFingerprintDoc",
    "LocationSampleDoc",
    "AttendanceServices",
    "build_services",
]
