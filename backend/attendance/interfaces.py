"""Protocols for the collaborators the attendance engine reads from and writes to."""

from datetime import date, datetime
from typing import Optional, Protocol

from .types import (
    AttendanceEvent,
    AttendanceRule,
    AuditFact,
    Charge,
    ChargeType,
    DeviceFingerprint,
    EscalationRule,
    FieldTrip,
    LocationSample,
    ShiftAssignment,
    Site,
    ViolationRecord,
    ViolationType,
)


class RuleConfigProvider(Protocol):
    """Read model over rule definitions, escalation tiers and shift assignments."""

    async def get_active_attendance_rule(self) -> Optional[AttendanceRule]:
        """Return the single active rule, or None when none is configured."""
        ...

    async def get_active_escalation_rule(self, violation_type: ViolationType) -> Optional[EscalationRule]:
        """Return the active escalation rule for a violation type, if any."""
        ...

    async def get_shift_assignments(
        self,
        employee_id: str,
        start: date,
        end: date,
    ) -> list[ShiftAssignment]:
        """Return assignments for the employee overlapping [start, end]."""
        ...


class AttendanceStore(Protocol):
    """Read model over stored attendance events, trips and charges."""

    async def get_events(
        self,
        employee_id: str,
        start: datetime,
        end: datetime,
    ) -> list[AttendanceEvent]:
        """Events whose clock-in falls in [start, end), oldest first."""
        ...

    async def get_open_events(self, employee_id: Optional[str] = None) -> list[AttendanceEvent]:
        """Events without a clock-out, for one employee or for everyone."""
        ...

    async def get_active_field_trip(self, employee_id: str) -> Optional[FieldTrip]:
        ...

    async def get_charges(
        self,
        employee_id: str,
        charge_type: ChargeType,
        charge_date: date,
    ) -> list[Charge]:
        ...

    async def get_charge(self, charge_id: str) -> Optional[Charge]:
        ...

    async def get_previous_event(self, employee_id: str, before: datetime) -> Optional[AttendanceEvent]:
        """Most recent event that clocked in strictly before `before`."""
        ...


class ViolationHistory(Protocol):
    """Source of past violations used for escalation."""

    async def get_violations(
        self,
        employee_id: str,
        violation_type: ViolationType,
        start: datetime,
        end: datetime,
    ) -> list[ViolationRecord]:
        """Violations that occurred in [start, end)."""
        ...


class IntegritySignals(Protocol):
    """Device and location signal history for an employee."""

    async def get_fingerprint(self, employee_id: str) -> Optional[DeviceFingerprint]:
        ...

    async def store_fingerprint(self, employee_id: str, fingerprint: DeviceFingerprint) -> None:
        ...

    async def recent_locations(self, employee_id: str, since: datetime) -> list[LocationSample]:
        """Samples captured at or after `since`, oldest first."""
        ...

    async def append_location(self, employee_id: str, sample: LocationSample) -> None:
        ...


class SiteDirectory(Protocol):
    """Authorized work sites."""

    async def get_active_sites(self, employee_id: str) -> list[Site]:
        ...


class EventSink(Protocol):
    """
    Persistence for everything the engine produces.

    Each method returns an acknowledgment; False means the write was not
    accepted.
    """

    async def record_event(self, event: AttendanceEvent) -> bool:
        ...

    async def record_charge(self, charge: Charge) -> bool:
        ...

    async def record_audit_fact(self, fact: AuditFact) -> bool:
        ...

    async def record_field_trip(self, trip: FieldTrip) -> bool:
        ...
