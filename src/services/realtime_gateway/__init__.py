"""
Realtime Gateway — WebSocket-шлюз живых локаций продавцов.

Компоненты:
- registry: реестр активных продавцов (in-memory)
- connection_manager: сессии и подписки на топики
- proximity: расстояния и уведомления «избранный рядом»
- messages: схемы входящих и исходящих сообщений
- broker: обработка сообщений
- app: FastAPI приложение (/ws + REST)
"""

from src.services.realtime_gateway.broker import RealtimeBroker
from src.services.realtime_gateway.connection_manager import ConnectionInfo, ConnectionManager
from src.services.realtime_gateway.proximity import (
    FavoriteProximityTracker,
    ProximityEngine,
    ProximityResult,
)
from src.services.realtime_gateway.registry import ActiveVendorRegistry

__all__ = [
    "RealtimeBroker",
    "ConnectionInfo",
    "ConnectionManager",
    "FavoriteProximityTracker",
    "ProximityEngine",
    "ProximityResult",
    "ActiveVendorRegistry",
]
