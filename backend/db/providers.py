"""MongoDB implementations of the attendance engine's collaborators."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional

from pymongo.errors import PyMongoError

from attendance.authorizer import ClockEventAuthorizer
from attendance.charges import ChargeLedger
from attendance.escalation import ChargeEscalationEngine
from attendance.integrity import IntegrityGate
from attendance.shift_resolver import ShiftResolver
from attendance.sweeps import AutoClockoutSweep, DailyAbsenceSweep
from attendance.types import (
    AttendanceEvent,
    AttendanceRule,
    AuditFact,
    Charge,
    ChargeStatus,
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

from .models import (
    AttendanceEventDoc,
    AttendanceRuleDoc,
    AuditFactDoc,
    ChargeDoc,
    DeviceFingerprintDoc,
    EscalationRuleDoc,
    FieldTripDoc,
    LocationSampleDoc,
    ShiftAssignmentDoc,
    SiteDoc,
)

logger = logging.getLogger(__name__)


class MongoRuleConfigProvider:
    async def get_active_attendance_rule(self) -> Optional[AttendanceRule]:
        doc = await (
            AttendanceRuleDoc.find(AttendanceRuleDoc.is_active == True)
            .sort(-AttendanceRuleDoc.updated_at)
            .first_or_none()
        )
        return AttendanceRule.from_doc(doc) if doc else None

    async def get_active_escalation_rule(self, violation_type: ViolationType) -> Optional[EscalationRule]:
        doc = await (
            EscalationRuleDoc.find(
                EscalationRuleDoc.violation_type == violation_type.value,
                EscalationRuleDoc.is_active == True,
            )
            .sort(-EscalationRuleDoc.updated_at)
            .first_or_none()
        )
        return EscalationRule.from_doc(doc) if doc else None

    async def get_shift_assignments(self, employee_id: str, start: date, end: date) -> list[ShiftAssignment]:
        docs = await ShiftAssignmentDoc.find(
            ShiftAssignmentDoc.employee_id == employee_id,
            ShiftAssignmentDoc.start_date <= end.isoformat(),
            ShiftAssignmentDoc.end_date >= start.isoformat(),
        ).to_list()
        return [d.to_domain() for d in docs]


class MongoAttendanceStore:
    """Read model over events, trips and charges; also derives violation history."""

    async def get_events(self, employee_id: str, start: datetime, end: datetime) -> list[AttendanceEvent]:
        docs = await (
            AttendanceEventDoc.find(
                AttendanceEventDoc.employee_id == employee_id,
                AttendanceEventDoc.clock_in_time >= start,
                AttendanceEventDoc.clock_in_time < end,
            )
            .sort(+AttendanceEventDoc.clock_in_time)
            .to_list()
        )
        return [d.to_domain() for d in docs]

    async def get_open_events(self, employee_id: Optional[str] = None) -> list[AttendanceEvent]:
        query = AttendanceEventDoc.find(AttendanceEventDoc.clock_out_time == None)
        if employee_id is not None:
            query = query.find(AttendanceEventDoc.employee_id == employee_id)
        docs = await query.sort(+AttendanceEventDoc.clock_in_time).to_list()
        return [d.to_domain() for d in docs]

    async def get_active_field_trip(self, employee_id: str) -> Optional[FieldTrip]:
        doc = await (
            FieldTripDoc.find(FieldTripDoc.employee_id == employee_id, FieldTripDoc.status == "active")
            .sort(-FieldTripDoc.start_time)
            .first_or_none()
        )
        return doc.to_domain() if doc else None

    async def get_charges(self, employee_id: str, charge_type: ChargeType, charge_date: date) -> list[Charge]:
        docs = await ChargeDoc.find(
            ChargeDoc.employee_id == employee_id,
            ChargeDoc.charge_type == charge_type.value,
            ChargeDoc.charge_date == charge_date.isoformat(),
        ).to_list()
        return [d.to_domain() for d in docs]

    async def get_charge(self, charge_id: str) -> Optional[Charge]:
        doc = await ChargeDoc.find_one(ChargeDoc.charge_id == charge_id)
        return doc.to_domain() if doc else None

    async def get_previous_event(self, employee_id: str, before: datetime) -> Optional[AttendanceEvent]:
        doc = await (
            AttendanceEventDoc.find(
                AttendanceEventDoc.employee_id == employee_id,
                AttendanceEventDoc.clock_in_time < before,
            )
            .sort(-AttendanceEventDoc.clock_in_time)
            .first_or_none()
        )
        return doc.to_domain() if doc else None

    async def get_violations(
        self,
        employee_id: str,
        violation_type: ViolationType,
        start: datetime,
        end: datetime,
    ) -> list[ViolationRecord]:
        """
        Late arrivals and early departures come from the events themselves;
        absences and break violations only exist as charges. Waived charges
        do not count.
        """
        if violation_type == ViolationType.LATE_ARRIVAL:
            events = await self.get_events(employee_id, start, end)
            times = [e.clock_in_time for e in events if e.is_late]
        elif violation_type == ViolationType.EARLY_DEPARTURE:
            docs = await AttendanceEventDoc.find(
                AttendanceEventDoc.employee_id == employee_id,
                AttendanceEventDoc.clock_out_time >= start,
                AttendanceEventDoc.clock_out_time < end,
                AttendanceEventDoc.early_closure == True,
                AttendanceEventDoc.auto_clocked_out == False,
            ).to_list()
            times = [d.clock_out_time for d in docs]
        else:
            docs = await ChargeDoc.find(
                ChargeDoc.employee_id == employee_id,
                ChargeDoc.charge_type == violation_type.value,
                ChargeDoc.charge_date >= start.date().isoformat(),
                ChargeDoc.charge_date <= end.date().isoformat(),
                ChargeDoc.status != ChargeStatus.WAIVED.value,
            ).to_list()
            times = [datetime.combine(date.fromisoformat(d.charge_date), time.min, tzinfo=start.tzinfo) for d in docs]
            times = [t for t in times if start <= t < end]

        return [
            ViolationRecord(employee_id=employee_id, violation_type=violation_type, occurred_at=t)
            for t in sorted(times)
        ]


class MongoIntegritySignals:
    async def get_fingerprint(self, employee_id: str) -> Optional[DeviceFingerprint]:
        doc = await DeviceFingerprintDoc.find_one(DeviceFingerprintDoc.employee_id == employee_id)
        return doc.to_domain() if doc else None

    async def store_fingerprint(self, employee_id: str, fingerprint: DeviceFingerprint) -> None:
        await DeviceFingerprintDoc.from_domain(employee_id, fingerprint).insert()

    async def recent_locations(self, employee_id: str, since: datetime) -> list[LocationSample]:
        docs = await (
            LocationSampleDoc.find(
                LocationSampleDoc.employee_id == employee_id,
                LocationSampleDoc.captured_at >= since,
            )
            .sort(+LocationSampleDoc.captured_at)
            .to_list()
        )
        return [d.to_domain() for d in docs]

    async def append_location(self, employee_id: str, sample: LocationSample) -> None:
        await LocationSampleDoc.from_domain(employee_id, sample).insert()


class MongoSiteDirectory:
    async def get_active_sites(self, employee_id: str) -> list[Site]:
        docs = await SiteDoc.find(SiteDoc.is_active == True).to_list()
        return [d.to_domain() for d in docs if not d.employee_ids or employee_id in d.employee_ids]


class MongoEventSink:
    """Upserts engine records by their engine-assigned ids."""

    async def record_event(self, event: AttendanceEvent) -> bool:
        doc = AttendanceEventDoc.from_domain(event)
        existing = await AttendanceEventDoc.find_one(AttendanceEventDoc.event_id == event.event_id)
        return await self._save(doc, existing, f"event {event.event_id}")

    async def record_field_trip(self, trip: FieldTrip) -> bool:
        doc = FieldTripDoc.from_domain(trip)
        existing = await FieldTripDoc.find_one(FieldTripDoc.trip_id == trip.trip_id)
        return await self._save(doc, existing, f"field trip {trip.trip_id}")

    async def record_charge(self, charge: Charge) -> bool:
        doc = ChargeDoc.from_domain(charge)
        existing = await ChargeDoc.find_one(ChargeDoc.charge_id == charge.charge_id)
        if existing is not None:
            doc.created_at = existing.created_at
        return await self._save(doc, existing, f"charge {charge.charge_id}")

    async def record_audit_fact(self, fact: AuditFact) -> bool:
        try:
            await AuditFactDoc.from_domain(fact).insert()
        except PyMongoError as e:
            logger.error(f"Failed to write audit fact {fact.action} on {fact.target}: {e}")
            return False
        return True

    async def _save(self, doc, existing, label: str) -> bool:
        if existing is not None:
            doc.id = existing.id
        try:
            await doc.save()
        except PyMongoError as e:
            logger.error(f"Failed to write {label}: {e}")
            return False
        return True


@dataclass
class AttendanceServices:
    """Engine components wired to MongoDB."""
    provider: MongoRuleConfigProvider
    store: MongoAttendanceStore
    authorizer: ClockEventAuthorizer
    ledger: ChargeLedger
    escalation: ChargeEscalationEngine
    shift_resolver: ShiftResolver
    absence_sweep: DailyAbsenceSweep
    auto_clockout_sweep: AutoClockoutSweep


def build_services() -> AttendanceServices:
    provider = MongoRuleConfigProvider()
    store = MongoAttendanceStore()
    sink = MongoEventSink()
    escalation = ChargeEscalationEngine(provider, store)
    shift_resolver = ShiftResolver.default(provider, store)

    authorizer = ClockEventAuthorizer(
        provider=provider,
        store=store,
        sink=sink,
        integrity_gate=IntegrityGate(MongoIntegritySignals()),
        sites=MongoSiteDirectory(),
        escalation=escalation,
        shift_resolver=shift_resolver,
    )

    return AttendanceServices(
        provider=provider,
        store=store,
        authorizer=authorizer,
        ledger=ChargeLedger(store, sink),
        escalation=escalation,
        shift_resolver=shift_resolver,
        absence_sweep=DailyAbsenceSweep(provider, store, sink, escalation, shift_resolver),
        auto_clockout_sweep=AutoClockoutSweep(provider, store, sink),
    )
