# src/services/realtime_gateway/proximity.py
"""
Движок близости: расстояния от покупателя до продавцов и
идемпотентные уведомления «избранный продавец рядом».
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from src.core.geo.geometry import (
    GeoPoint,
    estimate_eta_minutes,
    format_distance,
    distance_meters,
)
from src.core.vendors.models import ActiveVendorRecord


@dataclass(frozen=True)
class ProximityResult:
    """Расстояние от покупателя до продавца."""
    vendor_id: str
    distance_meters: float
    within_threshold: bool
    eta_speed_kmh: float = 30.0

    @property
    def distance_km(self) -> float:
        return self.distance_meters / 1000

    @property
    def distance_label(self) -> str:
        return format_distance(self.distance_km)

    @property
    def eta_minutes(self) -> int:
        return estimate_eta_minutes(self.distance_km, self.eta_speed_kmh)

    def to_payload(self) -> dict[str, Any]:
        return {
            "distanceMeters": round(self.distance_meters, 1),
            "distanceKm": round(self.distance_km, 3),
            "distance": self.distance_label,
            "etaMinutes": self.eta_minutes,
            "withinThreshold": self.within_threshold,
        }


class ProximityEngine:
    """Считает расстояния и аннотирует продавцов относительно покупателя."""

    def __init__(self, threshold_meters: float = 500.0, eta_speed_kmh: float = 30.0) -> None:
        self.threshold_meters = threshold_meters
        self._eta_speed_kmh = eta_speed_kmh

    def measure(self, position: GeoPoint, vendor: ActiveVendorRecord) -> ProximityResult:
        """Расстояние до одного продавца."""
        dist = distance_meters(
            position.latitude, position.longitude,
            vendor.latitude, vendor.longitude,
        )
        return ProximityResult(
            vendor_id=vendor.vendor_id,
            distance_meters=dist,
            within_threshold=dist <= self.threshold_meters,
            eta_speed_kmh=self._eta_speed_kmh,
        )

    def annotate(
        self,
        position: GeoPoint,
        vendors: Iterable[ActiveVendorRecord],
    ) -> list[tuple[ActiveVendorRecord, ProximityResult]]:
        """Пары (продавец, результат), ближайшие первыми."""
        pairs = [(vendor, self.measure(position, vendor)) for vendor in vendors]
        pairs.sort(key=lambda pair: pair[1].distance_meters)
        return pairs


class FavoriteProximityTracker:
    """
    Набор «уже уведомлённых» избранных продавцов одной сессии.

    Уведомление выдаётся один раз на каждый вход продавца в радиус;
    выход из радиуса снимает отметку, повторный вход уведомляет снова.
    """

    def __init__(self, threshold_meters: float = 500.0) -> None:
        self.threshold_meters = threshold_meters
        self._notified: set[str] = set()

    @property
    def notified(self) -> frozenset[str]:
        return frozenset(self._notified)

    def observe(self, vendor_id: str, distance: float) -> bool:
        """
        Учесть новое расстояние до избранного продавца.

        Returns:
            True если нужно отправить уведомление
        """
        if distance <= self.threshold_meters:
            if vendor_id in self._notified:
                return False
            self._notified.add(vendor_id)
            return True

        self._notified.discard(vendor_id)
        return False

    def forget(self, vendor_id: str) -> None:
        """Продавец больше не в избранном."""
        self._notified.discard(vendor_id)
