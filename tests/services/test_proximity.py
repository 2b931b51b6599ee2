# tests/services/test_proximity.py
"""
Тесты для движка близости и уведомлений об избранных продавцах.
"""

from __future__ import annotations

import pytest

from src.core.geo.geometry import GeoPoint
from src.services.realtime_gateway.proximity import (
    FavoriteProximityTracker,
    ProximityEngine,
    ProximityResult,
)
from tests.helpers import JAKARTA_BUYER, make_record


class TestProximityResult:
    """Тесты для ProximityResult."""

    def test_payload(self) -> None:
        result = ProximityResult(vendor_id="v1", distance_meters=750.0, within_threshold=False)

        assert result.to_payload() == {
            "distanceMeters": 750.0,
            "distanceKm": 0.75,
            "distance": "750m",
            "etaMinutes": 2,
            "withinThreshold": False,
        }

    def test_eta_speed(self) -> None:
        result = ProximityResult(vendor_id="v1", distance_meters=5000.0, within_threshold=False, eta_speed_kmh=5)

        assert result.eta_minutes == 60
        assert result.distance_label == "5.0km"


class TestProximityEngine:
    """Тесты для ProximityEngine."""

    def test_measure_jakarta(self) -> None:
        engine = ProximityEngine(threshold_meters=500)
        result = engine.measure(GeoPoint(*JAKARTA_BUYER), make_record("v1"))

        assert result.distance_meters == pytest.approx(843.7, rel=0.01)
        assert result.within_threshold is False

    def test_threshold_inclusive(self) -> None:
        vendor = make_record("v1")
        engine = ProximityEngine(threshold_meters=10_000)
        exact = engine.measure(GeoPoint(*JAKARTA_BUYER), vendor).distance_meters

        assert ProximityEngine(threshold_meters=exact).measure(GeoPoint(*JAKARTA_BUYER), vendor).within_threshold

    def test_annotate_sorts_by_distance(self) -> None:
        engine = ProximityEngine()
        far = make_record("far", 0.01, 0.0)
        near = make_record("near", 0.001, 0.0)
        middle = make_record("middle", 0.005, 0.0)

        pairs = engine.annotate(GeoPoint(0.0, 0.0), [far, near, middle])

        assert [record.vendor_id for record, _ in pairs] == ["near", "middle", "far"]
        assert pairs[0][1].within_threshold is True


class TestFavoriteProximityTracker:
    """Тесты для FavoriteProximityTracker."""

    def test_notify_once_per_entry(self) -> None:
        """600 -> 400 -> 600 -> 300 даёт ровно два уведомления."""
        tracker = FavoriteProximityTracker(threshold_meters=500)

        notifications = [tracker.observe("v1", d) for d in (600, 400, 600, 300)]

        assert notifications == [False, True, False, True]

    def test_staying_inside_does_not_repeat(self) -> None:
        tracker = FavoriteProximityTracker(threshold_meters=500)

        assert [tracker.observe("v1", d) for d in (400, 300, 200, 500)] == [True, False, False, False]
        assert tracker.notified == frozenset({"v1"})

    def test_vendors_tracked_independently(self) -> None:
        tracker = FavoriteProximityTracker(threshold_meters=500)

        assert tracker.observe("v1", 100) is True
        assert tracker.observe("v2", 100) is True
        assert tracker.observe("v1", 100) is False

    def test_forget_resets(self) -> None:
        tracker = FavoriteProximityTracker(threshold_meters=500)
        tracker.observe("v1", 100)
        tracker.forget("v1")

        assert tracker.observe("v1", 100) is True
