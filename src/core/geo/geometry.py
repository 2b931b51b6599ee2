"""
Геометрия на сфере и простая геоаналитика.
Чистые функции без состояния: расстояния, фильтр по радиусу,
кластеризация точек, heatmap-сетка и линейный тренд.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, Protocol, Sequence, TypeVar

from src.common.constants import EARTH_RADIUS_METERS
from src.common.exceptions import InsufficientData


class HasCoordinates(Protocol):
    """Любой объект с широтой и долготой в градусах."""
    latitude: float
    longitude: float


P = TypeVar("P", bound=HasCoordinates)


@dataclass(frozen=True)
class GeoPoint:
    """Точка на карте (градусы)."""
    latitude: float
    longitude: float


@dataclass
class Cluster(Generic[P]):
    """Кластер близко расположенных точек."""
    center_latitude: float
    center_longitude: float
    members: list[P] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.members)


@dataclass
class HeatmapCell:
    """Ячейка тепловой карты."""
    cell_latitude: float
    cell_longitude: float
    count: int
    intensity: float
    weight: float = 0.0  # например, суммарная выручка продавцов в ячейке


@dataclass(frozen=True)
class TrendLine:
    """Результат МНК: y = slope * x + intercept."""
    slope: float
    intercept: float

    def predict(self, index: float) -> float:
        return self.slope * index + self.intercept


def validate_coordinates(lat: float, lon: float) -> bool:
    """Валидация координат."""
    return -90 <= lat <= 90 and -180 <= lon <= 180


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Расстояние между двумя точками (в метрах) по формуле Haversine.

    Симметрична и равна нулю для совпадающих точек.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = (math.sin(dphi / 2) ** 2 +
         math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2)
    # Ошибки округления могут дать a чуть больше 1
    a = min(1.0, max(0.0, a))

    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def distance_between(a: HasCoordinates, b: HasCoordinates) -> float:
    """distance_meters для двух объектов с координатами."""
    return distance_meters(a.latitude, a.longitude, b.latitude, b.longitude)


def within_radius(
    center: HasCoordinates,
    candidates: Iterable[P],
    radius_meters: float,
) -> list[P]:
    """
    Оставляет кандидатов, находящихся не дальше radius_meters от центра.

    Граница включительно, порядок входа сохраняется.
    """
    return [c for c in candidates if distance_between(center, c) <= radius_meters]


def cluster_by_proximity(points: Sequence[P], radius_meters: float) -> list[Cluster[P]]:
    """
    Жадная однопроходная кластеризация от «семени».

    Каждая ещё не обработанная точка открывает кластер и забирает все
    последующие необработанные точки в пределах radius_meters от себя.
    Цепочки не объединяются, результат приближённый, сложность O(n²).
    """
    clusters: list[Cluster[P]] = []
    processed: set[int] = set()

    for i, seed in enumerate(points):
        if i in processed:
            continue
        processed.add(i)
        members = [seed]

        for j in range(i + 1, len(points)):
            if j in processed:
                continue
            if distance_between(seed, points[j]) <= radius_meters:
                members.append(points[j])
                processed.add(j)

        clusters.append(Cluster(
            center_latitude=sum(m.latitude for m in members) / len(members),
            center_longitude=sum(m.longitude for m in members) / len(members),
            members=members,
        ))

    return clusters


def grid_bucket_heatmap(
    points: Iterable[P],
    cell_size_degrees: float = 0.01,
    saturation_count: int = 10,
    weight: Callable[[P], float] | None = None,
) -> list[HeatmapCell]:
    """
    Раскладывает точки по ячейкам сетки.

    Ячейка = floor(coord / cell_size) * cell_size.
    intensity = min(count / saturation_count, 1).
    """
    if cell_size_degrees <= 0:
        raise ValueError("cell_size_degrees должен быть положительным")
    if saturation_count <= 0:
        raise ValueError("saturation_count должен быть положительным")

    # Ключ по целочисленным индексам, чтобы не зависеть от float-шума
    grid: dict[tuple[int, int], list[Any]] = {}
    for point in points:
        key = (
            math.floor(point.latitude / cell_size_degrees),
            math.floor(point.longitude / cell_size_degrees),
        )
        bucket = grid.setdefault(key, [0, 0.0])
        bucket[0] += 1
        if weight is not None:
            bucket[1] += weight(point)

    return [
        HeatmapCell(
            cell_latitude=round(lat_idx * cell_size_degrees, 10),
            cell_longitude=round(lon_idx * cell_size_degrees, 10),
            count=count,
            intensity=min(count / saturation_count, 1.0),
            weight=total_weight,
        )
        for (lat_idx, lon_idx), (count, total_weight) in grid.items()
    ]


def linear_trend(series: Sequence[tuple[Any, float]]) -> TrendLine:
    """
    Линейная регрессия (МНК), где x — порядковый номер элемента ряда.

    Первый элемент пары (метка периода) в расчёте не участвует.

    Raises:
        InsufficientData: меньше двух точек или нулевая дисперсия x
    """
    n = len(series)
    if n < 2:
        raise InsufficientData(f"Для тренда нужно минимум 2 точки, получено {n}")

    sum_x = sum_y = sum_xy = sum_x2 = 0.0
    for i, (_, value) in enumerate(series):
        y = float(value)
        sum_x += i
        sum_y += y
        sum_xy += i * y
        sum_x2 += i * i

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        raise InsufficientData("Нулевая дисперсия x, тренд не определён")

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n
    return TrendLine(slope=slope, intercept=intercept)


def format_distance(distance_km: float) -> str:
    """Человекочитаемое расстояние: «750m» до километра, дальше «1.2km»."""
    if distance_km < 1:
        return f"{distance_km * 1000:.0f}m"
    return f"{distance_km:.1f}km"


def estimate_eta_minutes(distance_km: float, speed_kmh: float = 30.0) -> int:
    """Оценка времени в пути в минутах при заданной скорости."""
    if speed_kmh <= 0:
        raise ValueError("speed_kmh должен быть положительным")
    return round(distance_km / speed_kmh * 60)
