"""
Geo-модуль.
Расстояния на сфере, фильтрация по радиусу, кластеры и heatmap.
"""

from src.core.geo.geometry import (
    Cluster,
    GeoPoint,
    HeatmapCell,
    TrendLine,
    cluster_by_proximity,
    distance_between,
    distance_meters,
    estimate_eta_minutes,
    format_distance,
    grid_bucket_heatmap,
    linear_trend,
    validate_coordinates,
    within_radius,
)

__all__ = [
    "Cluster",
    "GeoPoint",
    "HeatmapCell",
    "TrendLine",
    "cluster_by_proximity",
    "distance_between",
    "distance_meters",
    "estimate_eta_minutes",
    "format_distance",
    "grid_bucket_heatmap",
    "linear_trend",
    "validate_coordinates",
    "within_radius",
]
