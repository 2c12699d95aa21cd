"""Charge status lifecycle."""

import logging
from dataclasses import replace
from typing import Optional

from .errors import ChargeNotFound, InvalidChargeTransition
from .interfaces import AttendanceStore, EventSink
from .types import Charge, ChargeStatus
from .writes import WriteBatch, commit

logger = logging.getLogger(__name__)

# status -> statuses it may move to
ALLOWED_TRANSITIONS: dict[ChargeStatus, frozenset[ChargeStatus]] = {
    ChargeStatus.PENDING: frozenset({ChargeStatus.WAIVED, ChargeStatus.DISPUTED, ChargeStatus.PAID}),
    ChargeStatus.DISPUTED: frozenset({ChargeStatus.WAIVED, ChargeStatus.PENDING}),
    ChargeStatus.WAIVED: frozenset(),
    ChargeStatus.PAID: frozenset(),
}


def check_transition(current: ChargeStatus, target: ChargeStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidChargeTransition(f"Cannot move a {current.value} charge to {target.value}")


class ChargeLedger:
    """Moves charges between statuses and records who did it."""

    def __init__(self, store: AttendanceStore, sink: EventSink):
        self.store = store
        self.sink = sink

    async def _load(self, charge_id: str) -> Charge:
        charge = await self.store.get_charge(charge_id)
        if charge is None:
            raise ChargeNotFound(f"Charge {charge_id} not found")
        return charge

    async def _transition(
        self,
        charge: Charge,
        target: ChargeStatus,
        actor: str,
        action: str,
        reason: Optional[str] = None,
        **changes,
    ) -> Charge:
        check_transition(charge.status, target)
        updated = replace(charge, status=target, **changes)

        batch = WriteBatch()
        batch.charges.append(updated)
        batch.audit(
            actor,
            action,
            charge.charge_id or "",
            reason=reason,
            from_status=charge.status.value,
            to_status=target.value,
            final_amount=charge.final_amount,
        )
        await commit(self.sink, batch)

        logger.info(f"Charge {charge.charge_id}: {charge.status.value} -> {target.value} by {actor}")
        return updated

    async def waive(self, charge_id: str, actor: str, reason: str) -> Charge:
        charge = await self._load(charge_id)
        return await self._transition(
            charge, ChargeStatus.WAIVED, actor, "charge_waived", reason,
            waiver_reason=reason, waived_by=actor,
        )

    async def dispute(self, charge_id: str, actor: str, reason: str) -> Charge:
        charge = await self._load(charge_id)
        return await self._transition(
            charge, ChargeStatus.DISPUTED, actor, "charge_disputed", reason,
            dispute_reason=reason,
        )

    async def resolve_dispute(self, charge_id: str, actor: str, resolution: str, waive: bool) -> Charge:
        """Close a dispute: either waive the charge or put it back to pending."""
        charge = await self._load(charge_id)
        if charge.status != ChargeStatus.DISPUTED:
            raise InvalidChargeTransition(f"Charge {charge_id} is {charge.status.value}, not disputed")

        if waive:
            return await self._transition(
                charge, ChargeStatus.WAIVED, actor, "dispute_resolved", resolution,
                dispute_resolution=resolution, waiver_reason=resolution, waived_by=actor,
            )
        return await self._transition(
            charge, ChargeStatus.PENDING, actor, "dispute_resolved", resolution,
            dispute_resolution=resolution,
        )

    async def mark_paid(self, charge_id: str, actor: str) -> Charge:
        charge = await self._load(charge_id)
        return await self._transition(charge, ChargeStatus.PAID, actor, "charge_paid")
