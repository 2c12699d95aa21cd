"""Charge escalation for repeated violations within a rolling window."""

import logging
import uuid
from bisect import bisect_right
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional

from .interfaces import RuleConfigProvider, ViolationHistory
from .types import (
    Charge,
    ChargeType,
    EscalationRule,
    EscalationTier,
    ViolationRecord,
    ViolationType,
)

logger = logging.getLogger(__name__)


@dataclass
class EscalationResult:
    """Multiplier and amount for a new violation."""
    tier_multiplier: float
    final_amount: float
    base_amount: float
    ordinal: int = 1
    streak: list[ViolationRecord] = field(default_factory=list)
    rule_applied: bool = False

    def to_dict(self) -> dict:
        return {
            "tier_multiplier": self.tier_multiplier,
            "final_amount": self.final_amount,
            "base_amount": self.base_amount,
            "ordinal": self.ordinal,
            "rule_applied": self.rule_applied,
        }


def select_multiplier(tiers: list[EscalationTier], ordinal: int) -> float:
    """Multiplier of the tier with the largest occurrence count <= ordinal, else 1.0."""
    counts = [t.occurrence_count for t in tiers]
    idx = bisect_right(counts, ordinal) - 1
    if idx < 0:
        return 1.0
    return tiers[idx].multiplier


def current_streak(
    prior: list[datetime],
    occurred_at: datetime,
    lookback_period_days: int,
    reset_after_days: Optional[int],
) -> list[datetime]:
    """
    Violation times in the un-reset streak that ends with `occurred_at`.

    Only violations inside [occurred_at - lookback, occurred_at) count. A gap
    of `reset_after_days` or more between consecutive violations (the new one
    included) starts a new streak.
    """
    window_start = occurred_at - timedelta(days=lookback_period_days)
    times = sorted(t for t in prior if window_start <= t < occurred_at)
    times.append(occurred_at)

    start_idx = 0
    if reset_after_days:
        reset_gap = timedelta(days=reset_after_days)
        for i in range(1, len(times)):
            if times[i] - times[i - 1] >= reset_gap:
                start_idx = i

    return times[start_idx:]


class ChargeEscalationEngine:
    """Computes tier multipliers for repeated violations."""

    def __init__(self, provider: RuleConfigProvider, history: ViolationHistory):
        self.provider = provider
        self.history = history

    async def compute_charge(
        self,
        employee_id: str,
        violation_type: ViolationType,
        occurred_at: datetime,
        base_amount: float,
        prior: Optional[list[ViolationRecord]] = None,
    ) -> EscalationResult:
        """
        Compute the charge for a new violation.

        Args:
            employee_id: Employee the violation belongs to
            violation_type: Kind of violation
            occurred_at: When the new violation happened
            base_amount: Charge amount before escalation
            prior: Pre-filtered violation window; fetched from history when omitted

        Returns:
            EscalationResult with multiplier, final amount and streak ordinal
        """
        rule = await self.provider.get_active_escalation_rule(violation_type)
        if rule is None or not rule.is_active:
            return EscalationResult(
                tier_multiplier=1.0,
                final_amount=round(base_amount, 2),
                base_amount=base_amount,
            )

        if prior is None:
            prior = await self.history.get_violations(
                employee_id,
                violation_type,
                occurred_at - timedelta(days=rule.lookback_period_days),
                occurred_at,
            )

        return self.apply_rule(rule, employee_id, occurred_at, base_amount, prior)

    def apply_rule(
        self,
        rule: EscalationRule,
        employee_id: str,
        occurred_at: datetime,
        base_amount: float,
        prior: list[ViolationRecord],
    ) -> EscalationResult:
        times = current_streak(
            [p.occurred_at for p in prior if p.violation_type == rule.violation_type],
            occurred_at,
            rule.lookback_period_days,
            rule.reset_after_days,
        )
        ordinal = len(times)
        multiplier = select_multiplier(rule.tiers, ordinal)

        streak = [
            ViolationRecord(
                employee_id=employee_id,
                violation_type=rule.violation_type,
                occurred_at=t,
                ordinal_within_window=i + 1,
            )
            for i, t in enumerate(times)
        ]

        if multiplier > 1:
            logger.info(
                f"Escalating {rule.violation_type.value} for {employee_id}: "
                f"occurrence {ordinal} -> {multiplier}x"
            )

        return EscalationResult(
            tier_multiplier=multiplier,
            final_amount=round(base_amount * multiplier, 2),
            base_amount=base_amount,
            ordinal=ordinal,
            streak=streak,
            rule_applied=True,
        )


def make_charge(
    employee_id: str,
    charge_type: ChargeType,
    result: EscalationResult,
    charge_date: date,
    attendance_event_id: Optional[str] = None,
) -> Charge:
    """Build a pending charge from an escalation result."""
    return Charge(
        charge_id=uuid.uuid4().hex,
        employee_id=employee_id,
        charge_type=charge_type,
        base_amount=result.base_amount,
        multiplier_applied=result.tier_multiplier,
        final_amount=result.final_amount,
        charge_date=charge_date,
        attendance_event_id=attendance_event_id,
    )
