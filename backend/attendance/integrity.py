"""
Integrity gate: device fingerprint consistency and location spoofing detection.

The gate produces a confidence score (0-100, higher = more likely genuine).
A score below the hard threshold blocks the clock-in; every other finding is
advisory and surfaced to the caller as a warning.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

import settings

from .errors import IntegrityCheckTimeout
from .geofence import haversine_distance
from .interfaces import IntegritySignals
from .types import FINGERPRINT_FIELDS, DeviceFingerprint, LocationSample

logger = logging.getLogger(__name__)

MAX_HISTORY_SIZE = 50
HISTORY_WINDOW = timedelta(hours=24)
MAX_REALISTIC_SPEED_KMH = 150  # Max realistic commuting speed
RAPID_CHANGE_THRESHOLD_M = 1000  # Meters within a minute worth checking for speed
FINGERPRINT_MATCH_THRESHOLD = 70

# Suspicion points per indicator
PERFECT_ACCURACY_POINTS = 30
HIGH_ACCURACY_POINTS = 10
IMPOSSIBLE_SPEED_POINTS = 40
TELEPORT_POINTS = 35
REPORTED_SPEED_POINTS = 25
ALTITUDE_POINTS = 15
MOCK_LOCATION_POINTS = 50
ZIGZAG_POINTS = 20
STATIONARY_JUMP_POINTS = 25


@dataclass
class FingerprintComparison:
    """Similarity between the current and stored device fingerprint."""
    similarity_score: int
    has_prior: bool
    changes: list[str] = field(default_factory=list)

    @property
    def is_match(self) -> bool:
        return self.has_prior and self.similarity_score >= FINGERPRINT_MATCH_THRESHOLD


@dataclass
class SpoofingReport:
    """Suspicion analysis of one location sample."""
    suspicion_score: int = 0
    suspicion_reasons: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def confidence_score(self) -> int:
        return max(0, 100 - self.suspicion_score)

    def flag(self, reason: str, points: int) -> None:
        self.suspicion_reasons.append(reason)
        self.suspicion_score += points

    def warn(self, warning: str, points: int) -> None:
        self.warnings.append(warning)
        self.suspicion_score += points


@dataclass
class IntegrityResult:
    """Combined verdict of the integrity gate."""
    passed: bool
    confidence_score: int
    similarity_score: int = 0
    warnings: list[str] = field(default_factory=list)
    # Signals to record with the clock-in outcome
    baseline_fingerprint: Optional[DeviceFingerprint] = None
    location: Optional[LocationSample] = None

    def to_dict(self) -> dict:
        return {
            "passed": self.passed,
            "confidence_score": self.confidence_score,
            "similarity_score": self.similarity_score,
            "warnings": list(self.warnings),
        }


def gate_passes(confidence_score: int, threshold: int = settings.MIN_CONFIDENCE_SCORE) -> bool:
    """The only hard block: confidence strictly below the threshold."""
    return confidence_score >= threshold


def compare_fingerprints(
    current: DeviceFingerprint,
    stored: Optional[DeviceFingerprint],
) -> FingerprintComparison:
    """Share of identifying fields that match, as an integer percent."""
    if stored is None:
        return FingerprintComparison(similarity_score=0, has_prior=False)

    changes = []
    matching = 0
    for name in FINGERPRINT_FIELDS:
        if getattr(stored, name) == getattr(current, name):
            matching += 1
        else:
            changes.append(f"{name.replace('_', ' ')} changed")

    similarity = round(matching / len(FINGERPRINT_FIELDS) * 100)
    return FingerprintComparison(similarity_score=similarity, has_prior=True, changes=changes)


def calculate_bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial bearing from point 1 to point 2 in degrees [0, 360)."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_lon = math.radians(lon2 - lon1)

    y = math.sin(delta_lon) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(delta_lon)
    return (math.degrees(math.atan2(y, x)) + 360) % 360


def _distance(a: LocationSample, b: LocationSample) -> float:
    return haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def analyze_pattern(history: list[LocationSample], sample: LocationSample) -> Optional[tuple[str, int]]:
    """Zig-zag movement or a sudden jump after standing still. Needs 5 samples."""
    if len(history) < 5:
        return None

    recent = history[-5:]
    direction_changes = 0
    for i in range(1, len(recent) - 1):
        bearing1 = calculate_bearing(
            recent[i - 1].latitude, recent[i - 1].longitude, recent[i].latitude, recent[i].longitude
        )
        bearing2 = calculate_bearing(
            recent[i].latitude, recent[i].longitude, recent[i + 1].latitude, recent[i + 1].longitude
        )
        if abs(bearing1 - bearing2) > 150:
            direction_changes += 1

    if direction_changes >= 3:
        return "Erratic movement pattern detected (zigzag)", ZIGZAG_POINTS

    distances = [0.0] + [_distance(recent[i - 1], recent[i]) for i in range(1, len(recent))]
    stationary_count = sum(1 for d in distances if d < 10)
    if stationary_count >= 3 and _distance(recent[-1], sample) > 500:
        return "Sudden jump after stationary period", STATIONARY_JUMP_POINTS

    return None


def detect_spoofing(sample: LocationSample, history: list[LocationSample]) -> SpoofingReport:
    """Score a location sample against the employee's recent samples."""
    report = SpoofingReport()

    # Unrealistically precise fixes are typical of injected locations
    if sample.accuracy_meters < 5:
        report.flag("Location accuracy is unrealistically perfect (<5m)", PERFECT_ACCURACY_POINTS)
    elif sample.accuracy_meters < 10:
        report.warn("Unusually high accuracy detected", HIGH_ACCURACY_POINTS)

    if history:
        last = history[-1]
        elapsed = (sample.captured_at - last.captured_at).total_seconds()
        distance = _distance(last, sample)

        if elapsed < 60 and distance > RAPID_CHANGE_THRESHOLD_M:
            speed_kmh = math.inf if elapsed <= 0 else (distance / 1000) / (elapsed / 3600)
            if speed_kmh > MAX_REALISTIC_SPEED_KMH:
                shown = "instant" if math.isinf(speed_kmh) else f"{speed_kmh:.0f} km/h"
                report.flag(f"Impossible travel speed detected: {shown}", IMPOSSIBLE_SPEED_POINTS)

        if elapsed < 10 and distance > 100:
            report.flag("Rapid location jump detected (possible teleportation)", TELEPORT_POINTS)

        anomaly = analyze_pattern(history, sample)
        if anomaly:
            reason, points = anomaly
            report.warn(reason, points)

    if sample.speed_mps is not None and sample.speed_mps > MAX_REALISTIC_SPEED_KMH / 3.6:
        report.flag(f"Unrealistic speed reported: {sample.speed_mps * 3.6:.0f} km/h", REPORTED_SPEED_POINTS)

    if sample.altitude is not None and history:
        altitudes = [h.altitude for h in history[-5:] if h.altitude is not None]
        if altitudes:
            altitude_diff = abs(sample.altitude - sum(altitudes) / len(altitudes))
            if altitude_diff > 100:
                report.warn(f"Significant altitude change detected: {altitude_diff:.0f}m", ALTITUDE_POINTS)

    if sample.is_mock:
        report.flag("Mock location API detected on device", MOCK_LOCATION_POINTS)

    return report


class IntegrityGate:
    """Gates clock-ins on device and location integrity."""

    def __init__(
        self,
        signals: IntegritySignals,
        timeout_seconds: float = settings.INTEGRITY_TIMEOUT_SECONDS,
        min_confidence: int = settings.MIN_CONFIDENCE_SCORE,
        min_similarity: int = settings.MIN_FINGERPRINT_SIMILARITY,
    ):
        self.signals = signals
        self.timeout_seconds = timeout_seconds
        self.min_confidence = min_confidence
        self.min_similarity = min_similarity

    async def check(
        self,
        employee_id: str,
        fingerprint: DeviceFingerprint,
        location: Optional[LocationSample],
    ) -> IntegrityResult:
        """
        Run the gate with a bounded wait on the signal store.

        Raises:
            IntegrityCheckTimeout: signal history did not load in time
        """
        try:
            return await asyncio.wait_for(
                self._check(employee_id, fingerprint, location),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Integrity signals for {employee_id} timed out after {self.timeout_seconds}s")
            raise IntegrityCheckTimeout(
                f"Integrity check for {employee_id} did not complete within {self.timeout_seconds}s"
            )

    async def _check(self, employee_id, fingerprint, location) -> IntegrityResult:
        stored = await self.signals.get_fingerprint(employee_id)
        comparison = compare_fingerprints(fingerprint, stored)

        history: list[LocationSample] = []
        if location is not None:
            history = await self.signals.recent_locations(employee_id, location.captured_at - HISTORY_WINDOW)
            history = history[-MAX_HISTORY_SIZE:]

        result = self.evaluate(comparison, location, history)
        result.baseline_fingerprint = fingerprint if stored is None else None
        result.location = location

        if not result.passed:
            logger.warning(f"Integrity gate blocked {employee_id}: confidence {result.confidence_score}")
        elif result.warnings:
            logger.info(f"Integrity warnings for {employee_id}: {result.warnings}")
        return result

    def evaluate(
        self,
        comparison: FingerprintComparison,
        location: Optional[LocationSample],
        history: list[LocationSample],
    ) -> IntegrityResult:
        """Pure scoring step, separated from signal I/O."""
        warnings: list[str] = []

        if comparison.has_prior and comparison.similarity_score < self.min_similarity:
            warnings.append(
                f"Device fingerprint differs from the registered device "
                f"(similarity {comparison.similarity_score}%): {', '.join(comparison.changes)}"
            )
        elif comparison.has_prior and not comparison.is_match:
            warnings.append(f"Device characteristics changed: {', '.join(comparison.changes)}")

        if location is None:
            warnings.append("No location sample provided")
            confidence = 100
        else:
            report = detect_spoofing(location, history)
            confidence = report.confidence_score
            warnings.extend(report.suspicion_reasons)
            warnings.extend(report.warnings)

        return IntegrityResult(
            passed=gate_passes(confidence, self.min_confidence),
            confidence_score=confidence,
            similarity_score=comparison.similarity_score,
            warnings=warnings,
        )
