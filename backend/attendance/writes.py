"""Single write phase for everything one engine operation produces."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from utils.time import utc_now

from .errors import SinkWriteFailed
from .interfaces import EventSink, IntegritySignals
from .types import AttendanceEvent, AuditFact, Charge, DeviceFingerprint, FieldTrip, LocationSample

logger = logging.getLogger(__name__)


@dataclass
class WriteBatch:
    """Records collected during evaluation, written only once evaluation succeeds."""
    events: list[AttendanceEvent] = field(default_factory=list)
    trips: list[FieldTrip] = field(default_factory=list)
    charges: list[Charge] = field(default_factory=list)
    audit_facts: list[AuditFact] = field(default_factory=list)
    baseline_fingerprints: list[tuple[str, DeviceFingerprint]] = field(default_factory=list)
    location_samples: list[tuple[str, LocationSample]] = field(default_factory=list)

    def audit(self, actor: str, action: str, target: str, reason: Optional[str] = None, **details) -> None:
        self.audit_facts.append(AuditFact(
            actor=actor,
            action=action,
            target=target,
            reason=reason,
            occurred_at=utc_now(),
            details=details,
        ))

    def record_signals(
        self,
        employee_id: str,
        fingerprint: Optional[DeviceFingerprint] = None,
        location: Optional[LocationSample] = None,
    ) -> None:
        if fingerprint is not None:
            self.baseline_fingerprints.append((employee_id, fingerprint))
        if location is not None:
            self.location_samples.append((employee_id, location))

    def is_empty(self) -> bool:
        return not (
            self.events or self.trips or self.charges or self.audit_facts
            or self.baseline_fingerprints or self.location_samples
        )


async def _write_all(sink: EventSink, batch: WriteBatch, signals: Optional[IntegritySignals]) -> None:
    # Events first so charges and trips never reference a missing event
    for event in batch.events:
        if not await sink.record_event(event):
            raise SinkWriteFailed(f"Event {event.event_id} was not acknowledged")
    for trip in batch.trips:
        if not await sink.record_field_trip(trip):
            raise SinkWriteFailed(f"Field trip {trip.trip_id} was not acknowledged")
    for charge in batch.charges:
        if not await sink.record_charge(charge):
            raise SinkWriteFailed(f"Charge {charge.charge_id} was not acknowledged")
    for fact in batch.audit_facts:
        if not await sink.record_audit_fact(fact):
            raise SinkWriteFailed(f"Audit fact {fact.action} on {fact.target} was not acknowledged")

    if signals is None:
        return
    for employee_id, fingerprint in batch.baseline_fingerprints:
        await signals.store_fingerprint(employee_id, fingerprint)
        logger.info(f"Stored baseline device fingerprint for {employee_id}")
    for employee_id, sample in batch.location_samples:
        await signals.append_location(employee_id, sample)


async def commit(sink: EventSink, batch: WriteBatch, signals: Optional[IntegritySignals] = None) -> None:
    """
    Write a batch through the sink, then its signal samples.

    A caller cancelled before commit writes nothing. A caller cancelled
    mid-commit still waits for the writes to finish before the cancellation
    propagates, so any lock it holds stays held until the records land.
    """
    if batch.is_empty():
        return

    write = asyncio.ensure_future(_write_all(sink, batch, signals))
    try:
        await asyncio.shield(write)
    except asyncio.CancelledError as cancelled:
        while not write.done():
            try:
                await asyncio.shield(write)
            except asyncio.CancelledError:
                continue
        if not write.cancelled() and write.exception() is not None:
            logger.error(f"Write interrupted by cancellation failed: {write.exception()}")
        raise cancelled

    logger.debug(
        f"Committed {len(batch.events)} events, {len(batch.trips)} trips, "
        f"{len(batch.charges)} charges, {len(batch.audit_facts)} audit facts"
    )
