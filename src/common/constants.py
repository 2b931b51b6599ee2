"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class UserRole(str, Enum):
    """Роли пользователей."""
    BUYER = "BUYER"
    VENDOR = "VENDOR"
    ADMIN = "ADMIN"


class VendorStatus(str, Enum):
    """Статусы продавца."""
    ACTIVE = "ACTIVE"
    RESTING = "RESTING"
    INACTIVE = "INACTIVE"


class OrderStatus(str, Enum):
    """Статусы заказа."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class BroadcastMode(str, Enum):
    """Режим рассылки обновлений локации."""
    GLOBAL = "global"  # всем подключенным
    TOPIC = "topic"    # только подписчикам vendor:{id}


class NearbySource(str, Enum):
    """Источник данных для поиска ближайших продавцов."""
    REGISTRY_FIRST = "registry_first"
    STORAGE = "storage"


# Радиус Земли в метрах (сфера)
EARTH_RADIUS_METERS = 6_371_000.0

# Префиксы топиков
BUYER_TOPIC_PREFIX = "buyer:"
VENDOR_TOPIC_PREFIX = "vendor:"


def buyer_topic(user_id: str) -> str:
    """Топик персональных событий покупателя."""
    return f"{BUYER_TOPIC_PREFIX}{user_id}"


def vendor_topic(vendor_id: str) -> str:
    """Топик обновлений конкретного продавца."""
    return f"{VENDOR_TOPIC_PREFIX}{vendor_id}"
