import asyncio
import uuid
from datetime import date, datetime, time, timedelta, timezone

import pytest

from attendance.authorizer import ClockEventAuthorizer
from attendance.charges import ChargeLedger
from attendance.escalation import ChargeEscalationEngine
from attendance.integrity import IntegrityGate
from attendance.locks import KeyedLockRegistry
from attendance.sweeps import AutoClockoutSweep, DailyAbsenceSweep
from attendance.types import (
    AttendanceEvent,
    AttendanceRule,
    Charge,
    ChargeStatus,
    ChargeType,
    ClockInRequest,
    ClockOutRequest,
    DeviceFingerprint,
    EscalationRule,
    EscalationTier,
    FieldTrip,
    LocationSample,
    LocationType,
    ShiftAssignment,
    ShiftType,
    Site,
    TripStatus,
    ViolationRecord,
    ViolationType,
)

UTC = timezone.utc

# A Monday
MONDAY = date(2026, 3, 2)

OFFICE_LAT = 6.4474
OFFICE_LON = 3.4720


def at(day: date, hour: int, minute: int = 0, second: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute, second), tzinfo=UTC)


# ============================================================================
# In-memory collaborators
# ============================================================================


class FakeRuleConfig:
    def __init__(self, rule=None, escalation_rules=None, assignments=None):
        self.rule = rule
        self.escalation_rules = escalation_rules or {}
        self.assignments = assignments or []

    async def get_active_attendance_rule(self):
        return self.rule

    async def get_active_escalation_rule(self, violation_type):
        return self.escalation_rules.get(violation_type)

    async def get_shift_assignments(self, employee_id, start, end):
        return [
            a for a in self.assignments
            if a.employee_id == employee_id and a.start_date <= end and a.end_date >= start
        ]


class InMemoryAttendanceStore:
    """Store, sink and violation history over plain dicts."""

    def __init__(self):
        self.events: dict[str, AttendanceEvent] = {}
        self.trips: dict[str, FieldTrip] = {}
        self.charges: dict[str, Charge] = {}
        self.audit_facts = []
        self.fail_writes_for: set[str] = set()
        self.write_delay = 0.0

    def add_event(self, event: AttendanceEvent) -> AttendanceEvent:
        if event.event_id is None:
            event.event_id = uuid.uuid4().hex
        self.events[event.event_id] = event
        return event

    def add_trip(self, trip: FieldTrip) -> FieldTrip:
        if trip.trip_id is None:
            trip.trip_id = uuid.uuid4().hex
        self.trips[trip.trip_id] = trip
        return trip

    def add_charge(self, charge: Charge) -> Charge:
        if charge.charge_id is None:
            charge.charge_id = uuid.uuid4().hex
        self.charges[charge.charge_id] = charge
        return charge

    def actions(self) -> list[str]:
        return [f.action for f in self.audit_facts]

    # AttendanceStore

    async def get_events(self, employee_id, start, end):
        return sorted(
            (e for e in self.events.values()
             if e.employee_id == employee_id and start <= e.clock_in_time < end),
            key=lambda e: e.clock_in_time,
        )

    async def get_open_events(self, employee_id=None):
        return sorted(
            (e for e in self.events.values()
             if e.is_open and (employee_id is None or e.employee_id == employee_id)),
            key=lambda e: e.clock_in_time,
        )

    async def get_active_field_trip(self, employee_id):
        active = [t for t in self.trips.values() if t.employee_id == employee_id and t.status == TripStatus.ACTIVE]
        return max(active, key=lambda t: t.start_time) if active else None

    async def get_charges(self, employee_id, charge_type, charge_date):
        return [
            c for c in self.charges.values()
            if c.employee_id == employee_id and c.charge_type == charge_type and c.charge_date == charge_date
        ]

    async def get_charge(self, charge_id):
        return self.charges.get(charge_id)

    async def get_previous_event(self, employee_id, before):
        earlier = [e for e in self.events.values() if e.employee_id == employee_id and e.clock_in_time < before]
        return max(earlier, key=lambda e: e.clock_in_time) if earlier else None

    # ViolationHistory

    async def get_violations(self, employee_id, violation_type, start, end):
        if violation_type == ViolationType.LATE_ARRIVAL:
            times = [e.clock_in_time for e in self.events.values()
                     if e.employee_id == employee_id and e.is_late]
        elif violation_type == ViolationType.EARLY_DEPARTURE:
            times = [e.clock_out_time for e in self.events.values()
                     if e.employee_id == employee_id and e.early_closure and not e.auto_clocked_out]
        else:
            times = [at(c.charge_date, 0) for c in self.charges.values()
                     if c.employee_id == employee_id and c.charge_type.value == violation_type.value
                     and c.status != ChargeStatus.WAIVED]
        return [
            ViolationRecord(employee_id, violation_type, t)
            for t in sorted(times) if start <= t < end
        ]

    # EventSink

    async def record_event(self, event):
        if self.write_delay:
            await asyncio.sleep(self.write_delay)
        if "event" in self.fail_writes_for:
            return False
        self.events[event.event_id] = event
        return True

    async def record_field_trip(self, trip):
        if "trip" in self.fail_writes_for:
            return False
        self.trips[trip.trip_id] = trip
        return True

    async def record_charge(self, charge):
        if "charge" in self.fail_writes_for:
            return False
        self.charges[charge.charge_id] = charge
        return True

    async def record_audit_fact(self, fact):
        if "audit" in self.fail_writes_for:
            return False
        self.audit_facts.append(fact)
        return True


class FakeIntegritySignals:
    def __init__(self, delay: float = 0.0):
        self.fingerprints: dict[str, DeviceFingerprint] = {}
        self.locations: dict[str, list[LocationSample]] = {}
        self.delay = delay

    async def get_fingerprint(self, employee_id):
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.fingerprints.get(employee_id)

    async def store_fingerprint(self, employee_id, fingerprint):
        self.fingerprints[employee_id] = fingerprint

    async def recent_locations(self, employee_id, since):
        return [s for s in self.locations.get(employee_id, []) if s.captured_at >= since]

    async def append_location(self, employee_id, sample):
        self.locations.setdefault(employee_id, []).append(sample)


class FakeSiteDirectory:
    def __init__(self, sites=None, delay: float = 0.0):
        self.sites = sites or []
        self.delay = delay

    async def get_active_sites(self, employee_id):
        if self.delay:
            await asyncio.sleep(self.delay)
        return list(self.sites)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def rule():
    """Default rule: 08:00-17:00, 15 min grace, night 22:00-06:00, charges enabled."""
    return AttendanceRule(
        work_start=time(8, 0),
        work_end=time(17, 0),
        grace_period_minutes=15,
        late_threshold_minutes=30,
        late_charge_amount=500.0,
        absence_charge_amount=2000.0,
        early_closure_charge_amount=300.0,
        night_shift_start=time(22, 0),
        night_shift_end=time(6, 0),
        consecutive_auto_clockout_charge=1000.0,
        rule_id="rule-1",
        version=3,
    )


@pytest.fixture
def late_escalation():
    return EscalationRule(
        violation_type=ViolationType.LATE_ARRIVAL,
        lookback_period_days=30,
        reset_after_days=None,
        tiers=[EscalationTier(3, 1.5), EscalationTier(5, 2.0)],
    )


@pytest.fixture
def office_site():
    return Site(
        site_id="hq",
        name="Head Office",
        latitude=OFFICE_LAT,
        longitude=OFFICE_LON,
        radius_meters=100.0,
    )


@pytest.fixture
def fingerprint():
    return DeviceFingerprint(
        user_agent="Mozilla/5.0 (Linux; Android 14)",
        screen_resolution="1080x2400",
        timezone="Africa/Lagos",
        language="en-GB",
        platform="Linux armv8l",
        hardware_concurrency=8,
        device_memory=8.0,
        color_depth=24,
        pixel_ratio=2.75,
        touch_support=True,
        vendor="Google Inc.",
    )


@pytest.fixture
def make_location():
    """Factory for location samples, by default at the office with a realistic accuracy."""
    def _make_location(
        captured_at: datetime,
        latitude: float = OFFICE_LAT,
        longitude: float = OFFICE_LON,
        accuracy_meters: float = 15.0,
        **kwargs,
    ) -> LocationSample:
        return LocationSample(
            latitude=latitude,
            longitude=longitude,
            accuracy_meters=accuracy_meters,
            captured_at=captured_at,
            **kwargs,
        )
    return _make_location


@pytest.fixture
def make_event():
    """Factory for stored attendance events."""
    def _make_event(
        clock_in_time: datetime,
        employee_id: str = "emp-1",
        location_type: LocationType = LocationType.OFFICE,
        clock_out_time: datetime = None,
        **kwargs,
    ) -> AttendanceEvent:
        return AttendanceEvent(
            employee_id=employee_id,
            clock_in_time=clock_in_time,
            location_type=location_type,
            clock_out_time=clock_out_time,
            **kwargs,
        )
    return _make_event


@pytest.fixture
def make_clock_in(fingerprint, make_location):
    """Factory for clock-in requests at the office location."""
    def _make_clock_in(
        timestamp: datetime,
        mode: LocationType = LocationType.OFFICE,
        employee_id: str = "emp-1",
        location: LocationSample = None,
        with_location: bool = True,
        **kwargs,
    ) -> ClockInRequest:
        if location is None and with_location:
            location = make_location(timestamp)
        return ClockInRequest(
            employee_id=employee_id,
            mode=mode,
            timestamp=timestamp,
            fingerprint=fingerprint,
            location=location,
            **kwargs,
        )
    return _make_clock_in


@pytest.fixture
def make_clock_out():
    def _make_clock_out(timestamp: datetime, employee_id: str = "emp-1", **kwargs) -> ClockOutRequest:
        return ClockOutRequest(employee_id=employee_id, timestamp=timestamp, **kwargs)
    return _make_clock_out


@pytest.fixture
def make_assignment():
    def _make_assignment(
        shift_type: ShiftType,
        start_date: date = MONDAY - timedelta(days=30),
        end_date: date = MONDAY + timedelta(days=30),
        employee_id: str = "emp-1",
        **kwargs,
    ) -> ShiftAssignment:
        return ShiftAssignment(
            employee_id=employee_id,
            shift_type=shift_type,
            start_date=start_date,
            end_date=end_date,
            **kwargs,
        )
    return _make_assignment


@pytest.fixture
def make_charge():
    def _make_charge(
        charge_type: ChargeType = ChargeType.LATE_ARRIVAL,
        status: ChargeStatus = ChargeStatus.PENDING,
        employee_id: str = "emp-1",
        charge_date: date = MONDAY,
        amount: float = 500.0,
    ) -> Charge:
        return Charge(
            employee_id=employee_id,
            charge_type=charge_type,
            base_amount=amount,
            multiplier_applied=1.0,
            final_amount=amount,
            charge_date=charge_date,
            status=status,
            charge_id=uuid.uuid4().hex,
        )
    return _make_charge


@pytest.fixture
def config(rule):
    return FakeRuleConfig(rule=rule)


@pytest.fixture
def store():
    return InMemoryAttendanceStore()


@pytest.fixture
def signals():
    return FakeIntegritySignals()


@pytest.fixture
def sites(office_site):
    return FakeSiteDirectory([office_site])


@pytest.fixture
def escalation(config, store):
    return ChargeEscalationEngine(config, store)


@pytest.fixture
def authorizer(config, store, signals, sites, escalation):
    return ClockEventAuthorizer(
        provider=config,
        store=store,
        sink=store,
        integrity_gate=IntegrityGate(signals, timeout_seconds=1.0),
        sites=sites,
        escalation=escalation,
        locks=KeyedLockRegistry(),
        site_timeout_seconds=1.0,
    )


@pytest.fixture
def ledger(store):
    return ChargeLedger(store, store)


@pytest.fixture
def absence_sweep(config, store, escalation):
    return DailyAbsenceSweep(config, store, store, escalation)


@pytest.fixture
def auto_clockout_sweep(config, store):
    return AutoClockoutSweep(config, store, store)
