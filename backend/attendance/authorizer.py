"""Clock-in / clock-out orchestration and the per-day session state machine."""

import asyncio
import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Optional

import settings
from utils.time import day_bounds, ensure_aware

from .errors import (
    ClockInInProgress,
    ConfigMissing,
    GeofenceBlocked,
    IntegrityCheckTimeout,
    InvariantViolation,
    NoOpenEvent,
    SecurityBlocked,
)
from .escalation import ChargeEscalationEngine, make_charge
from .geofence import GeofenceResult, GeofenceValidator
from .integrity import IntegrityGate, IntegrityResult
from .interfaces import AttendanceStore, EventSink, RuleConfigProvider, SiteDirectory
from .lateness import LatenessEvaluator, LatenessResult, is_in_night_window
from .locks import KeyedLockRegistry
from .shift_resolver import ShiftResolver
from .types import (
    AttendanceEvent,
    AttendanceRule,
    ChargeType,
    ClockInRequest,
    ClockOutRequest,
    ClockResult,
    ClockStatus,
    FieldTrip,
    LocationType,
    TripStatus,
    ViolationType,
)
from .writes import WriteBatch, commit

logger = logging.getLogger(__name__)


async def load_active_rule(provider: RuleConfigProvider) -> AttendanceRule:
    """Fetch the active rule snapshot or fail closed."""
    rule = await provider.get_active_attendance_rule()
    if rule is None or not rule.is_active:
        raise ConfigMissing("No active attendance rule configured")
    return rule


def close_event(
    evaluator: LatenessEvaluator,
    event: AttendanceEvent,
    clock_out_time: datetime,
    rule: AttendanceRule,
    forced: bool = False,
    overtime_approved: Optional[bool] = None,
    overtime_start_time: Optional[datetime] = None,
) -> AttendanceEvent:
    """Return a terminal copy of an open event with its hours filled in."""
    approved = event.overtime_approved if overtime_approved is None else overtime_approved
    overtime_start = overtime_start_time or event.overtime_start_time
    hours = evaluator.evaluate_overtime_and_hours(
        event.clock_in_time,
        clock_out_time,
        approved,
        overtime_start,
        rule,
        forced=forced,
    )
    return replace(
        event,
        clock_out_time=clock_out_time,
        total_hours=hours.total_hours,
        overtime_hours=hours.overtime_hours,
        night_shift_hours=hours.night_shift_hours,
        overtime_approved=approved,
        overtime_start_time=overtime_start if approved else None,
        early_closure=hours.early_closure,
        auto_clocked_out=forced,
    )


class ClockEventAuthorizer:
    """
    Authorizes clock events for one employee at a time.

    Per employee and calendar day: at most one office session, at most one
    field session, and no office session once the employee has gone to the
    field. Every operation evaluates first and writes once at the end.
    """

    def __init__(
        self,
        provider: RuleConfigProvider,
        store: AttendanceStore,
        sink: EventSink,
        integrity_gate: IntegrityGate,
        sites: SiteDirectory,
        escalation: ChargeEscalationEngine,
        shift_resolver: Optional[ShiftResolver] = None,
        lateness: Optional[LatenessEvaluator] = None,
        geofence: Optional[GeofenceValidator] = None,
        locks: Optional[KeyedLockRegistry] = None,
        site_timeout_seconds: float = settings.SITE_LOOKUP_TIMEOUT_SECONDS,
    ):
        self.provider = provider
        self.store = store
        self.sink = sink
        self.integrity_gate = integrity_gate
        self.sites = sites
        self.escalation = escalation
        self.shift_resolver = shift_resolver or ShiftResolver.default(provider, store)
        self.lateness = lateness or LatenessEvaluator()
        self.geofence = geofence or GeofenceValidator()
        self.locks = locks or KeyedLockRegistry()
        self.site_timeout_seconds = site_timeout_seconds

    # ------------------------------------------------------------------
    # Clock-in
    # ------------------------------------------------------------------

    async def clock_in(self, request: ClockInRequest, actor: Optional[str] = None) -> ClockResult:
        """
        Authorize and record a clock-in.

        Returns a ClockResult for every user-facing outcome.

        Raises:
            ConfigMissing: no active attendance rule
            IntegrityCheckTimeout: signal or site lookup timed out
            SinkWriteFailed: the sink refused a write
        """
        actor = actor or request.employee_id
        # Day keys, shift times and stored events are all UTC
        request = replace(request, timestamp=ensure_aware(request.timestamp))
        key = (request.employee_id, request.timestamp.date())
        try:
            async with self.locks.hold(key):
                return await self._clock_in(request, actor)
        except ClockInInProgress as e:
            logger.info(str(e))
            return ClockResult(status=ClockStatus.IN_PROGRESS, message="Clock-in already in progress")

    async def _clock_in(self, request: ClockInRequest, actor: str) -> ClockResult:
        rule = await load_active_rule(self.provider)
        warnings: list[str] = []
        integrity: Optional[IntegrityResult] = None

        try:
            integrity = await self.integrity_gate.check(request.employee_id, request.fingerprint, request.location)
            warnings.extend(integrity.warnings)
            if not integrity.passed:
                raise SecurityBlocked(
                    f"Location integrity confidence {integrity.confidence_score} is below the minimum",
                    integrity.confidence_score,
                    integrity.warnings,
                )

            geofence = None
            if request.mode == LocationType.OFFICE:
                geofence = await self._check_geofence(request)

            today, open_events = await self._load_day(request)
            self._enforce_session_invariants(request, today, open_events)
        except SecurityBlocked as e:
            return await self._blocked(ClockStatus.SECURITY_BLOCKED, request, actor, str(e), warnings, integrity)
        except GeofenceBlocked as e:
            return await self._blocked(ClockStatus.GEOFENCE_BLOCKED, request, actor, str(e), warnings, integrity)
        except InvariantViolation as e:
            return await self._blocked(
                ClockStatus.INVARIANT_VIOLATION, request, actor, str(e), warnings, integrity, e.conflicting_event
            )

        batch = WriteBatch()
        if request.mode == LocationType.OFFICE:
            await self._auto_close_field_trip(request, rule, open_events, batch, actor)

        resolution = await self.shift_resolver.resolve_detailed(
            request.employee_id, request.timestamp.date(), rule, request.timestamp.tzinfo
        )
        warnings.extend(w.message for w in resolution.warnings)

        # Only the first session of the day is judged for lateness
        if today:
            lateness = LatenessResult(
                is_late=False,
                late_by_minutes=0,
                is_night_shift=is_in_night_window(request.timestamp, rule),
            )
        else:
            lateness = self.lateness.evaluate(request.timestamp, rule, resolution.shift_type)

        event = AttendanceEvent(
            event_id=uuid.uuid4().hex,
            employee_id=request.employee_id,
            clock_in_time=request.timestamp,
            location_type=request.mode,
            shift_type=resolution.shift_type,
            is_late=lateness.is_late,
            late_by_minutes=lateness.late_by_minutes,
            is_night_shift=lateness.is_night_shift,
            night_shift_hours=lateness.night_shift_hours,
            within_geofence=geofence.within_geofence if geofence else None,
            geofence_distance_meters=geofence.distance_meters if geofence else None,
            site_id=geofence.site.site_id if geofence and geofence.site else None,
            integrity_confidence=integrity.confidence_score,
            warnings=list(warnings),
        )
        batch.events.append(event)

        if request.mode == LocationType.FIELD:
            batch.trips.append(FieldTrip(
                trip_id=uuid.uuid4().hex,
                employee_id=request.employee_id,
                start_time=request.timestamp,
                purpose=request.purpose,
                attendance_event_id=event.event_id,
            ))

        if lateness.is_late and rule.late_charge_amount > 0:
            result = await self.escalation.compute_charge(
                request.employee_id,
                ViolationType.LATE_ARRIVAL,
                request.timestamp,
                rule.late_charge_amount,
            )
            batch.charges.append(make_charge(
                request.employee_id,
                ChargeType.LATE_ARRIVAL,
                result,
                request.timestamp.date(),
                event.event_id,
            ))

        batch.audit(
            actor,
            "clock_in",
            event.event_id,
            mode=request.mode.value,
            shift_type=resolution.shift_type.value,
            shift_source=resolution.source,
            is_late=lateness.is_late,
            late_by_minutes=lateness.late_by_minutes,
            rule_version=rule.version,
        )
        if warnings:
            batch.audit(actor, "clock_in_warnings", event.event_id, reason="; ".join(warnings))

        batch.record_signals(request.employee_id, integrity.baseline_fingerprint, integrity.location)
        await commit(self.sink, batch, self.integrity_gate.signals)
        logger.info(
            f"Clock-in accepted for {request.employee_id} ({request.mode.value}, "
            f"{resolution.shift_type.value} shift, late={lateness.is_late})"
        )
        return ClockResult(status=ClockStatus.ACCEPTED, event=event, charges=batch.charges, warnings=warnings)

    async def _check_geofence(self, request: ClockInRequest) -> Optional[GeofenceResult]:
        try:
            sites = await asyncio.wait_for(
                self.sites.get_active_sites(request.employee_id),
                timeout=self.site_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise IntegrityCheckTimeout(
                f"Site lookup for {request.employee_id} did not complete within {self.site_timeout_seconds}s"
            )

        active = [s for s in sites if s.is_active]
        if not active:
            return None
        if request.location is None:
            raise GeofenceBlocked("A location is required for office clock-in", float("inf"), active[0].radius_meters)

        result = self.geofence.validate_nearest(request.location, active)
        if not result.within_geofence:
            raise GeofenceBlocked(
                f"You are {result.distance_meters:.0f}m from {result.site.name} "
                f"(allowed radius {result.site.radius_meters:.0f}m)",
                result.distance_meters,
                result.site.radius_meters,
            )
        return result

    async def _load_day(self, request: ClockInRequest) -> tuple[list[AttendanceEvent], list[AttendanceEvent]]:
        start, end = day_bounds(request.timestamp.date(), request.timestamp.tzinfo)
        today = await self.store.get_events(request.employee_id, start, end)
        open_events = await self.store.get_open_events(request.employee_id)
        return today, open_events

    def _enforce_session_invariants(
        self,
        request: ClockInRequest,
        today: list[AttendanceEvent],
        open_events: list[AttendanceEvent],
    ) -> None:
        same_mode_today = [e for e in today if e.location_type == request.mode]
        if same_mode_today:
            raise InvariantViolation(
                f"Only one {request.mode.value} session is allowed per day",
                same_mode_today[0],
            )

        if request.mode == LocationType.OFFICE:
            field_today = [e for e in today if e.location_type == LocationType.FIELD]
            if field_today:
                raise InvariantViolation(
                    "You cannot return to office mode after starting field work today",
                    field_today[0],
                )

        still_open = [e for e in open_events if e.location_type == request.mode]
        if still_open:
            raise InvariantViolation(
                f"You are already clocked in ({request.mode.value}) since "
                f"{still_open[0].clock_in_time.isoformat()}",
                still_open[0],
            )

    async def _auto_close_field_trip(
        self,
        request: ClockInRequest,
        rule: AttendanceRule,
        open_events: list[AttendanceEvent],
        batch: WriteBatch,
        actor: str,
    ) -> None:
        """Entering the office completes a field trip still marked active."""
        trip = await self.store.get_active_field_trip(request.employee_id)
        if trip is None:
            return

        note = "Auto-completed on office clock-in"
        closed_trip = replace(
            trip,
            status=TripStatus.COMPLETED,
            end_time=request.timestamp,
            notes=f"{trip.notes}\n{note}" if trip.notes else note,
        )
        batch.trips.append(closed_trip)
        batch.audit(actor, "field_trip_auto_closed", trip.trip_id or "", reason=note)

        for event in open_events:
            if event.location_type != LocationType.FIELD:
                continue
            batch.events.append(close_event(self.lateness, event, request.timestamp, rule, forced=True))
            batch.audit(actor, "field_session_auto_closed", event.event_id or "", reason=note)

        logger.info(f"Auto-closed field trip {trip.trip_id} for {request.employee_id}")

    async def _blocked(
        self,
        status: ClockStatus,
        request: ClockInRequest,
        actor: str,
        message: str,
        warnings: list[str],
        integrity: Optional[IntegrityResult] = None,
        conflicting_event: Optional[AttendanceEvent] = None,
    ) -> ClockResult:
        logger.info(f"Clock-in {status.value} for {request.employee_id}: {message}")
        batch = WriteBatch()
        batch.audit(
            actor,
            "clock_in_rejected",
            request.employee_id,
            reason=message,
            status=status.value,
            mode=request.mode.value,
            warnings=list(warnings),
        )
        if integrity is not None:
            # Rejected attempts still feed the signal history
            batch.record_signals(request.employee_id, integrity.baseline_fingerprint, integrity.location)
        await commit(self.sink, batch, self.integrity_gate.signals)
        return ClockResult(
            status=status,
            warnings=warnings,
            message=message,
            conflicting_event=conflicting_event,
        )

    # ------------------------------------------------------------------
    # Clock-out
    # ------------------------------------------------------------------

    async def clock_out(self, request: ClockOutRequest, actor: Optional[str] = None) -> ClockResult:
        """
        Close the employee's latest open session.

        Raises:
            ConfigMissing: no active attendance rule
            SinkWriteFailed: the sink refused a write
        """
        actor = actor or request.employee_id
        request = replace(
            request,
            timestamp=ensure_aware(request.timestamp),
            overtime_start_time=ensure_aware(request.overtime_start_time),
        )
        try:
            async with self.locks.hold(("clock_out", request.employee_id)):
                return await self._clock_out(request, actor)
        except ClockInInProgress:
            return ClockResult(status=ClockStatus.IN_PROGRESS, message="Clock-out already in progress")
        except InvariantViolation as e:
            logger.info(f"Clock-out rejected for {request.employee_id}: {e}")
            return ClockResult(
                status=ClockStatus.INVARIANT_VIOLATION,
                message=str(e),
                conflicting_event=e.conflicting_event,
            )

    async def _clock_out(self, request: ClockOutRequest, actor: str) -> ClockResult:
        rule = await load_active_rule(self.provider)

        open_events = await self.store.get_open_events(request.employee_id)
        if request.mode is not None:
            open_events = [e for e in open_events if e.location_type == request.mode]
        if not open_events:
            raise NoOpenEvent("No active clock-in found")

        event = max(open_events, key=lambda e: e.clock_in_time)
        if request.timestamp < event.clock_in_time:
            raise InvariantViolation("Clock-out time is before the clock-in time", event)

        closed = close_event(
            self.lateness,
            event,
            request.timestamp,
            rule,
            forced=request.forced,
            overtime_approved=request.overtime_approved or event.overtime_approved,
            overtime_start_time=request.overtime_start_time,
        )

        batch = WriteBatch()
        batch.events.append(closed)

        if closed.location_type == LocationType.FIELD:
            trip = await self.store.get_active_field_trip(request.employee_id)
            if trip is not None:
                batch.trips.append(replace(trip, status=TripStatus.COMPLETED, end_time=request.timestamp))

        if closed.early_closure and rule.early_closure_charge_amount > 0:
            result = await self.escalation.compute_charge(
                request.employee_id,
                ViolationType.EARLY_DEPARTURE,
                request.timestamp,
                rule.early_closure_charge_amount,
            )
            batch.charges.append(make_charge(
                request.employee_id,
                ChargeType.EARLY_DEPARTURE,
                result,
                request.timestamp.date(),
                closed.event_id,
            ))

        batch.audit(
            actor,
            "clock_out",
            closed.event_id or "",
            total_hours=closed.total_hours,
            overtime_hours=closed.overtime_hours,
            night_shift_hours=closed.night_shift_hours,
            early_closure=closed.early_closure,
            forced=request.forced,
            rule_version=rule.version,
        )

        await commit(self.sink, batch)
        logger.info(
            f"Clock-out accepted for {request.employee_id}: {closed.total_hours}h "
            f"(early_closure={closed.early_closure})"
        )
        return ClockResult(status=ClockStatus.ACCEPTED, event=closed, charges=batch.charges)
