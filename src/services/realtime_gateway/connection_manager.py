# src/services/realtime_gateway/connection_manager.py
"""
Менеджер WebSocket соединений.
Управляет состоянием сессий, подписками и рассылкой сообщений.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from src.common.constants import BUYER_TOPIC_PREFIX, VENDOR_TOPIC_PREFIX, UserRole
from src.core.geo.geometry import GeoPoint
from src.services.realtime_gateway.proximity import FavoriteProximityTracker


class MessageSink(Protocol):
    """Минимальный интерфейс транспорта (fastapi.WebSocket подходит)."""

    async def send_json(self, data: Any, mode: str = "text") -> None: ...


@dataclass
class ConnectionInfo:
    """Состояние одной сессии."""
    connection_id: str
    websocket: MessageSink
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    user_id: str | None = None  # None пока не пришёл валидный токен
    role: UserRole | None = None
    subscriptions: set[str] = field(default_factory=set)  # buyer:{id}, vendor:{id}
    vendor_id: str | None = None  # продавец, чью локацию шлёт это соединение
    position: GeoPoint | None = None  # последняя известная позиция покупателя
    favorites: FavoriteProximityTracker = field(default_factory=FavoriteProximityTracker)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def buyer_topic(self) -> str | None:
        for topic in self.subscriptions:
            if topic.startswith(BUYER_TOPIC_PREFIX):
                return topic
        return None

    @property
    def followed_vendor_ids(self) -> set[str]:
        return {
            topic[len(VENDOR_TOPIC_PREFIX):]
            for topic in self.subscriptions
            if topic.startswith(VENDOR_TOPIC_PREFIX)
        }


class ConnectionManager:
    """
    Менеджер WebSocket соединений.

    Поддерживает:
    - Подключение/отключение клиентов
    - Переход сессии в состояние Authenticated
    - Подписка на топики (buyer:{id} — не больше одного, vendor:{id} — сколько угодно)
    - Рассылка по топику, всем и персонально
    """

    def __init__(self, proximity_threshold_meters: float = 500.0) -> None:
        # connection_id -> ConnectionInfo
        self._connections: dict[str, ConnectionInfo] = {}

        # topic -> set of connection_ids
        self._subscriptions: dict[str, set[str]] = {}

        self._threshold = proximity_threshold_meters

        # Для статистики
        self._total_connections: int = 0
        self._total_messages_sent: int = 0

    @property
    def active_connections(self) -> int:
        """Количество активных соединений."""
        return len(self._connections)

    async def connect(
        self,
        websocket: MessageSink,
        connection_id: str | None = None,
        *,
        accept: bool = True,
    ) -> ConnectionInfo:
        """Зарегистрировать новое соединение (Connected/Unauthenticated)."""
        if accept and hasattr(websocket, "accept"):
            await websocket.accept()

        conn = ConnectionInfo(
            connection_id=connection_id or uuid.uuid4().hex,
            websocket=websocket,
            favorites=FavoriteProximityTracker(self._threshold),
        )
        self._connections[conn.connection_id] = conn
        self._total_connections += 1
        return conn

    def get(self, connection_id: str) -> ConnectionInfo | None:
        return self._connections.get(connection_id)

    def authenticate(self, connection_id: str, user_id: str, role: UserRole | None = None) -> None:
        """Отметить сессию как аутентифицированную."""
        conn = self._connections.get(connection_id)
        if conn is None:
            return
        conn.user_id = user_id
        conn.role = role

    def bind_vendor(self, connection_id: str, vendor_id: str) -> None:
        """Запомнить продавца, которого транслирует соединение."""
        conn = self._connections.get(connection_id)
        if conn is not None:
            conn.vendor_id = vendor_id

    def set_position(self, connection_id: str, position: GeoPoint) -> None:
        """Запомнить позицию покупателя."""
        conn = self._connections.get(connection_id)
        if conn is not None:
            conn.position = position

    async def disconnect(self, connection_id: str) -> ConnectionInfo | None:
        """Отключить клиента и снять все подписки."""
        conn = self._connections.pop(connection_id, None)
        if conn is None:
            return None

        for topic in list(conn.subscriptions):
            self._unsubscribe_from_topic(conn, topic)
        return conn

    async def subscribe(self, connection_id: str, topic: str) -> bool:
        """
        Подписать соединение на топик.

        Примеры топиков:
        - buyer:{user_id} — персональные события покупателя
        - vendor:{vendor_id} — локация избранного продавца
        """
        conn = self._connections.get(connection_id)
        if conn is None:
            return False

        conn.subscriptions.add(topic)
        self._subscriptions.setdefault(topic, set()).add(connection_id)
        return True

    async def join_buyer_topic(self, connection_id: str, topic: str) -> bool:
        """Вступить в топик покупателя, покинув предыдущий (если был)."""
        conn = self._connections.get(connection_id)
        if conn is None:
            return False

        current = conn.buyer_topic
        if current is not None and current != topic:
            self._unsubscribe_from_topic(conn, current)
        return await self.subscribe(connection_id, topic)

    async def unsubscribe(self, connection_id: str, topic: str) -> None:
        """Отписать соединение от топика."""
        conn = self._connections.get(connection_id)
        if conn is not None:
            self._unsubscribe_from_topic(conn, topic)

    def _unsubscribe_from_topic(self, conn: ConnectionInfo, topic: str) -> None:
        """Внутренний метод отписки."""
        conn.subscriptions.discard(topic)

        subscribers = self._subscriptions.get(topic)
        if subscribers is not None:
            subscribers.discard(conn.connection_id)
            if not subscribers:
                del self._subscriptions[topic]

    async def send_personal(self, connection_id: str, message: dict[str, Any]) -> bool:
        """
        Отправить сообщение конкретному соединению.

        Returns:
            True если сообщение отправлено
        """
        conn = self._connections.get(connection_id)
        if conn is None:
            return False
        return await self._send(conn, message)

    async def broadcast_to_topic(self, topic: str, message: dict[str, Any]) -> int:
        """
        Отправить сообщение всем подписчикам топика.

        Returns:
            Количество успешно отправленных сообщений
        """
        targets = [
            self._connections[cid]
            for cid in list(self._subscriptions.get(topic, ()))
            if cid in self._connections
        ]
        return await self._send_many(targets, message)

    async def broadcast_all(self, message: dict[str, Any]) -> int:
        """Отправить сообщение всем подключенным клиентам."""
        return await self._send_many(list(self._connections.values()), message)

    def connections_following(self, vendor_id: str) -> list[ConnectionInfo]:
        """Соединения, подписанные на продавца."""
        topic = f"{VENDOR_TOPIC_PREFIX}{vendor_id}"
        return [
            self._connections[cid]
            for cid in list(self._subscriptions.get(topic, ()))
            if cid in self._connections
        ]

    def get_subscriptions(self, connection_id: str) -> set[str]:
        """Получить все подписки соединения."""
        conn = self._connections.get(connection_id)
        return conn.subscriptions.copy() if conn else set()

    def get_topic_subscribers(self, topic: str) -> set[str]:
        """Получить всех подписчиков топика."""
        return self._subscriptions.get(topic, set()).copy()

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "active_connections": len(self._connections),
            "authenticated_connections": sum(1 for c in self._connections.values() if c.is_authenticated),
            "vendor_connections": sum(1 for c in self._connections.values() if c.vendor_id is not None),
            "total_topics": len(self._subscriptions),
            "total_connections_ever": self._total_connections,
            "total_messages_sent": self._total_messages_sent,
        }

    async def _send_many(self, targets: list[ConnectionInfo], message: dict[str, Any]) -> int:
        sent_count = 0
        for conn in targets:
            if await self._send(conn, message):
                sent_count += 1
        return sent_count

    async def _send(self, conn: ConnectionInfo, message: dict[str, Any]) -> bool:
        try:
            await conn.websocket.send_json(message)
        except Exception:
            # Соединение разорвано: снимаем подписки, очистку реестра
            # выполнит обработчик отключения
            await self.disconnect(conn.connection_id)
            return False
        self._total_messages_sent += 1
        return True
