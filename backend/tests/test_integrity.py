"""Unit tests for the integrity gate: fingerprint similarity and spoofing detection."""

import asyncio
from dataclasses import replace
from datetime import timedelta

import pytest

from attendance.errors import IntegrityCheckTimeout
from attendance.integrity import (
    IntegrityGate,
    compare_fingerprints,
    detect_spoofing,
    gate_passes,
)

from conftest import MONDAY, OFFICE_LAT, OFFICE_LON, FakeIntegritySignals, at

NOW = at(MONDAY, 8, 0)


class TestFingerprintSimilarity:

    def test_no_stored_record_scores_zero(self, fingerprint):
        comparison = compare_fingerprints(fingerprint, None)

        assert comparison.similarity_score == 0
        assert comparison.has_prior is False
        assert comparison.is_match is False

    def test_identical_fingerprint_scores_100(self, fingerprint):
        comparison = compare_fingerprints(fingerprint, replace(fingerprint))

        assert comparison.similarity_score == 100
        assert comparison.is_match is True
        assert comparison.changes == []

    def test_one_changed_field(self, fingerprint):
        changed = replace(fingerprint, user_agent="Mozilla/5.0 (iPhone)")

        comparison = compare_fingerprints(changed, fingerprint)

        assert comparison.similarity_score == round(10 / 11 * 100)
        assert comparison.changes == ["user agent changed"]

    def test_fingerprint_id_ignores_language(self, fingerprint):
        assert replace(fingerprint, language="fr-FR").fingerprint_id == fingerprint.fingerprint_id
        assert replace(fingerprint, platform="Win32").fingerprint_id != fingerprint.fingerprint_id


class TestSpoofingDetection:

    def test_clean_sample_full_confidence(self, make_location):
        report = detect_spoofing(make_location(NOW), [])

        assert report.confidence_score == 100
        assert report.suspicion_reasons == []

    def test_perfect_accuracy_flagged(self, make_location):
        report = detect_spoofing(make_location(NOW, accuracy_meters=3), [])

        assert report.suspicion_score == 30
        assert report.confidence_score == 70

    def test_high_accuracy_is_advisory(self, make_location):
        report = detect_spoofing(make_location(NOW, accuracy_meters=8), [])

        assert report.suspicion_score == 10
        assert report.suspicion_reasons == []
        assert report.warnings == ["Unusually high accuracy detected"]

    def test_impossible_speed(self, make_location):
        previous = make_location(NOW - timedelta(seconds=30), latitude=OFFICE_LAT - 0.05)

        report = detect_spoofing(make_location(NOW), [previous])

        assert any("Impossible travel speed" in r for r in report.suspicion_reasons)
        assert report.suspicion_score >= 40

    def test_teleport(self, make_location):
        previous = make_location(NOW - timedelta(seconds=5), latitude=OFFICE_LAT - 0.002)

        report = detect_spoofing(make_location(NOW), [previous])

        assert any("teleportation" in r for r in report.suspicion_reasons)
        assert report.suspicion_score == 35

    def test_reported_speed(self, make_location):
        report = detect_spoofing(make_location(NOW, speed_mps=50), [])

        assert report.suspicion_score == 25

    def test_altitude_change(self, make_location):
        history = [make_location(NOW - timedelta(minutes=30 - i), altitude=10.0) for i in range(3)]

        report = detect_spoofing(make_location(NOW, altitude=250.0), history)

        assert report.suspicion_score == 15

    def test_mock_location(self, make_location):
        report = detect_spoofing(make_location(NOW, is_mock=True), [])

        assert report.confidence_score == 50

    def test_stationary_then_jump(self, make_location):
        history = [make_location(NOW - timedelta(minutes=10 - i)) for i in range(5)]
        far = make_location(NOW, latitude=OFFICE_LAT + 0.01)

        report = detect_spoofing(far, history)

        assert "Sudden jump after stationary period" in report.warnings

    def test_confidence_never_negative(self, make_location):
        previous = make_location(NOW - timedelta(seconds=2), latitude=OFFICE_LAT - 0.05)
        sample = make_location(NOW, accuracy_meters=1, speed_mps=100, is_mock=True)

        report = detect_spoofing(sample, [previous])

        assert report.confidence_score == 0


class TestGateThreshold:

    def test_39_blocks(self):
        assert gate_passes(39) is False

    def test_40_passes(self):
        assert gate_passes(40) is True

    def test_custom_threshold(self):
        assert gate_passes(55, threshold=60) is False


class TestIntegrityGate:

    def test_first_check_returns_baseline(self, fingerprint, make_location):
        signals = FakeIntegritySignals()
        gate = IntegrityGate(signals)
        sample = make_location(NOW)

        result = asyncio.run(gate.check("emp-1", fingerprint, sample))

        assert result.passed is True
        assert result.similarity_score == 0
        assert result.baseline_fingerprint == fingerprint
        assert result.location == sample

    def test_check_does_not_write_signals(self, fingerprint, make_location):
        signals = FakeIntegritySignals()
        gate = IntegrityGate(signals)

        asyncio.run(gate.check("emp-1", fingerprint, make_location(NOW)))

        assert signals.fingerprints == {}
        assert signals.locations == {}

    def test_known_device_has_no_baseline(self, fingerprint, make_location):
        signals = FakeIntegritySignals()
        signals.fingerprints["emp-1"] = fingerprint
        gate = IntegrityGate(signals)

        result = asyncio.run(gate.check("emp-1", fingerprint, make_location(NOW)))

        assert result.baseline_fingerprint is None
        assert result.similarity_score == 100

    def test_low_similarity_warns_but_passes(self, fingerprint, make_location):
        signals = FakeIntegritySignals()
        signals.fingerprints["emp-1"] = fingerprint
        other_device = replace(
            fingerprint,
            user_agent="other",
            screen_resolution="800x600",
            timezone="UTC",
            platform="Win32",
            hardware_concurrency=2,
            device_memory=2.0,
        )
        gate = IntegrityGate(signals)

        result = asyncio.run(gate.check("emp-1", other_device, make_location(NOW)))

        assert result.passed is True
        assert result.similarity_score < 50
        assert any("differs from the registered device" in w for w in result.warnings)

    def test_confidence_40_passes_with_warnings(self, fingerprint, make_location):
        gate = IntegrityGate(FakeIntegritySignals())
        sample = make_location(NOW, accuracy_meters=8, is_mock=True)

        result = asyncio.run(gate.check("emp-1", fingerprint, sample))

        assert result.confidence_score == 40
        assert result.passed is True
        assert result.warnings

    def test_below_threshold_blocks(self, fingerprint, make_location):
        gate = IntegrityGate(FakeIntegritySignals())
        sample = make_location(NOW, accuracy_meters=3, is_mock=True)

        result = asyncio.run(gate.check("emp-1", fingerprint, sample))

        assert result.confidence_score == 20
        assert result.passed is False

    def test_no_location_warns(self, fingerprint):
        gate = IntegrityGate(FakeIntegritySignals())

        result = asyncio.run(gate.check("emp-1", fingerprint, None))

        assert result.passed is True
        assert "No location sample provided" in result.warnings

    def test_history_limited_to_last_24_hours(self, fingerprint, make_location):
        signals = FakeIntegritySignals()
        # A day-old fix far away would look like impossible travel if it counted
        signals.locations["emp-1"] = [make_location(NOW - timedelta(hours=25), latitude=OFFICE_LAT - 1)]
        gate = IntegrityGate(signals)

        result = asyncio.run(gate.check("emp-1", fingerprint, make_location(NOW)))

        assert result.confidence_score == 100

    def test_slow_signals_time_out(self, fingerprint, make_location):
        gate = IntegrityGate(FakeIntegritySignals(delay=0.2), timeout_seconds=0.01)

        with pytest.raises(IntegrityCheckTimeout):
            asyncio.run(gate.check("emp-1", fingerprint, make_location(NOW)))
