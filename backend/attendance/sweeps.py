"""Scheduled sweeps: end-of-day absence charges and forced clock-outs."""

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone, tzinfo
from typing import Optional

from utils.time import at_time, day_bounds, ensure_aware

from .authorizer import close_event, load_active_rule
from .errors import AttendanceError
from .escalation import ChargeEscalationEngine, EscalationResult, make_charge
from .interfaces import AttendanceStore, EventSink, RuleConfigProvider
from .lateness import LatenessEvaluator
from .shift_resolver import ShiftResolver
from .types import (
    AttendanceEvent,
    AttendanceRule,
    Charge,
    ChargeType,
    LocationType,
    ShiftType,
    ViolationType,
)
from .writes import WriteBatch, commit

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


@dataclass
class SweepReport:
    """Outcome of one absence sweep."""
    target_date: date
    skipped: bool = False
    skip_reason: Optional[str] = None
    charges: list[Charge] = field(default_factory=list)
    absent: list[str] = field(default_factory=list)
    present: list[str] = field(default_factory=list)
    excluded: list[str] = field(default_factory=list)
    already_charged: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "target_date": self.target_date.isoformat(),
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
            "charges": [c.to_dict() for c in self.charges],
            "absent": self.absent,
            "present": self.present,
            "excluded": self.excluded,
            "already_charged": self.already_charged,
            "errors": self.errors,
        }


@dataclass
class AutoClockoutReport:
    """Outcome of one auto clock-out sweep."""
    run_at: datetime
    day_sessions_closed: list[AttendanceEvent] = field(default_factory=list)
    night_sessions_closed: list[AttendanceEvent] = field(default_factory=list)
    charges: list[Charge] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "run_at": self.run_at.isoformat(),
            "day_sessions_closed": [e.to_dict() for e in self.day_sessions_closed],
            "night_sessions_closed": [e.to_dict() for e in self.night_sessions_closed],
            "charges": [c.to_dict() for c in self.charges],
            "errors": self.errors,
        }


def classify_absence(shift_type: ShiftType, events: list[AttendanceEvent]) -> str:
    """
    Decide whether an employee was absent for their shift on a day.

    Returns "absent", "present" or "excluded". Excluded means the employee
    worked, but only in the other shift's window.
    """
    if not events:
        return "absent"

    night_events = [e for e in events if e.is_night_shift]
    day_events = [e for e in events if not e.is_night_shift]

    if shift_type == ShiftType.NIGHT:
        return "present" if night_events else "excluded"
    if shift_type == ShiftType.ROTATING:
        return "present"
    return "present" if day_events else "excluded"


class DailyAbsenceSweep:
    """Raises absence charges for one calendar day. Safe to re-run for the same day."""

    def __init__(
        self,
        provider: RuleConfigProvider,
        store: AttendanceStore,
        sink: EventSink,
        escalation: ChargeEscalationEngine,
        shift_resolver: Optional[ShiftResolver] = None,
    ):
        self.provider = provider
        self.store = store
        self.sink = sink
        self.escalation = escalation
        self.shift_resolver = shift_resolver or ShiftResolver.default(provider, store)

    async def run(
        self,
        target_date: date,
        employee_ids: list[str],
        actor: str = SYSTEM_ACTOR,
        tz: Optional[tzinfo] = None,
    ) -> SweepReport:
        rule = await load_active_rule(self.provider)
        report = SweepReport(target_date=target_date)
        tz = tz or timezone.utc

        if rule.skip_weekends and target_date.weekday() >= 5:
            report.skipped = True
            report.skip_reason = "Weekend: no absence charges on Saturdays and Sundays"
            logger.info(f"Skipping absence sweep for weekend {target_date.isoformat()}")
            return report

        for employee_id in employee_ids:
            try:
                await self._sweep_employee(employee_id, target_date, rule, report, actor, tz)
            except AttendanceError as e:
                logger.error(f"Absence sweep failed for {employee_id}: {e}")
                report.errors[employee_id] = str(e)

        logger.info(
            f"Absence sweep {target_date.isoformat()}: {len(report.charges)} charges, "
            f"{len(report.excluded)} excluded, {len(report.errors)} errors"
        )
        return report

    async def _sweep_employee(
        self,
        employee_id: str,
        target_date: date,
        rule: AttendanceRule,
        report: SweepReport,
        actor: str,
        tz: Optional[tzinfo],
    ) -> None:
        if await self.store.get_charges(employee_id, ChargeType.ABSENCE, target_date):
            report.already_charged.append(employee_id)
            return

        shift_type = await self.shift_resolver.resolve(employee_id, target_date, rule, tz)
        start, end = day_bounds(target_date, tz)
        events = await self.store.get_events(employee_id, start, end)

        verdict = classify_absence(shift_type, events)
        if verdict == "present":
            report.present.append(employee_id)
            return
        if verdict == "excluded":
            logger.info(f"Employee {employee_id} ({shift_type.value} shift) only worked the other window on {target_date}")
            report.excluded.append(employee_id)
            return

        report.absent.append(employee_id)
        if rule.absence_charge_amount <= 0:
            return

        shift_start = rule.night_shift_start if shift_type == ShiftType.NIGHT else rule.work_start
        result = await self.escalation.compute_charge(
            employee_id,
            ViolationType.ABSENCE,
            at_time(target_date, shift_start, tz),
            rule.absence_charge_amount,
        )
        charge = make_charge(employee_id, ChargeType.ABSENCE, result, target_date)

        batch = WriteBatch()
        batch.charges.append(charge)
        batch.audit(
            actor,
            "absence_charged",
            charge.charge_id,
            shift_type=shift_type.value,
            multiplier=result.tier_multiplier,
            final_amount=result.final_amount,
        )
        await commit(self.sink, batch)
        report.charges.append(charge)


class AutoClockoutSweep:
    """
    Closes sessions employees forgot to end.

    Office day sessions without approved overtime are clocked out at the
    rule's work end once the auto clock-out deadline has passed. Night
    sessions are clocked out at the night window end.
    """

    def __init__(
        self,
        provider: RuleConfigProvider,
        store: AttendanceStore,
        sink: EventSink,
        lateness: Optional[LatenessEvaluator] = None,
    ):
        self.provider = provider
        self.store = store
        self.sink = sink
        self.lateness = lateness or LatenessEvaluator()

    async def run(self, now: datetime, actor: str = SYSTEM_ACTOR) -> AutoClockoutReport:
        now = ensure_aware(now)
        rule = await load_active_rule(self.provider)
        report = AutoClockoutReport(run_at=now)

        for event in await self.store.get_open_events():
            try:
                if event.is_night_shift or event.shift_type == ShiftType.NIGHT:
                    await self._close_night_session(event, now, rule, report, actor)
                elif event.location_type == LocationType.OFFICE and not event.overtime_approved:
                    await self._close_day_session(event, now, rule, report, actor)
            except AttendanceError as e:
                logger.error(f"Auto clock-out failed for event {event.event_id}: {e}")
                report.errors[event.event_id or event.employee_id] = str(e)

        logger.info(
            f"Auto clock-out at {now.isoformat()}: {len(report.day_sessions_closed)} day, "
            f"{len(report.night_sessions_closed)} night, {len(report.charges)} charges"
        )
        return report

    async def _close_day_session(
        self,
        event: AttendanceEvent,
        now: datetime,
        rule: AttendanceRule,
        report: AutoClockoutReport,
        actor: str,
    ) -> None:
        clock_in_time = ensure_aware(event.clock_in_time)
        tz = clock_in_time.tzinfo
        day = clock_in_time.date()
        if now < at_time(day, rule.auto_clockout_deadline, tz):
            return

        # Recorded at work end, not at the deadline
        clock_out = max(at_time(day, rule.work_end, tz), clock_in_time)
        closed = close_event(self.lateness, event, clock_out, rule, forced=True)
        closed = replace(closed, early_closure=True)

        batch = WriteBatch()
        batch.events.append(closed)
        batch.audit(actor, "auto_clock_out", closed.event_id or "", reason="Not clocked out by the deadline",
                    total_hours=closed.total_hours)

        previous = await self.store.get_previous_event(event.employee_id, event.clock_in_time)
        if previous is not None and previous.auto_clocked_out and rule.consecutive_auto_clockout_charge > 0:
            amount = rule.consecutive_auto_clockout_charge
            charge = make_charge(
                event.employee_id,
                ChargeType.CONSECUTIVE_AUTO_CLOCKOUT,
                EscalationResult(tier_multiplier=1.0, final_amount=round(amount, 2), base_amount=amount),
                day,
                closed.event_id,
            )
            batch.charges.append(charge)
            batch.audit(actor, "consecutive_auto_clockout_charged", charge.charge_id,
                        previous_event_id=previous.event_id)

        await commit(self.sink, batch)
        report.day_sessions_closed.append(closed)
        report.charges.extend(batch.charges)

    async def _close_night_session(
        self,
        event: AttendanceEvent,
        now: datetime,
        rule: AttendanceRule,
        report: AutoClockoutReport,
        actor: str,
    ) -> None:
        night_end = at_time(now.date(), rule.night_shift_end, now.tzinfo)
        if now < night_end or ensure_aware(event.clock_in_time) >= night_end:
            return

        closed = close_event(self.lateness, event, night_end, rule, forced=True)

        batch = WriteBatch()
        batch.events.append(closed)
        batch.audit(actor, "auto_clock_out", closed.event_id or "", reason="Night shift ended",
                    total_hours=closed.total_hours)
        await commit(self.sink, batch)
        report.night_sessions_closed.append(closed)
