# src/services/realtime_gateway/broker.py
"""
Брокер realtime-сессий.

Связывает транспорт (ConnectionManager), реестр активных продавцов,
постоянное хранилище и движок близости:

    vendor.locationPush -> токен -> продавец -> registry.upsert
        -> запись в БД в фоне -> locationUpdated всем -> уведомления
           избранного -> locationAck отправителю

Любая ошибка обработки сообщения превращается в событие error
только для отправителя; соединение при этом не закрывается.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from src.common.constants import (
    BroadcastMode,
    NearbySource,
    TypeMsg,
    VendorStatus,
    buyer_topic,
    vendor_topic,
)
from src.common.exceptions import (
    Forbidden,
    InvalidPayload,
    NotFound,
    PersistenceDeferred,
    RealtimeError,
    Unauthorized,
)
from src.common.logger import log_debug, log_error, log_info, log_warning
from src.core.auth.tokens import AuthContext, TokenVerifier
from src.core.geo.geometry import GeoPoint, within_radius
from src.core.vendors.models import ActiveVendorRecord
from src.core.vendors.repository import OrderRepository, VendorRepository
from src.services.realtime_gateway.connection_manager import ConnectionInfo, ConnectionManager
from src.services.realtime_gateway.messages import (
    ActiveVendorsSnapshot,
    ErrorEvent,
    FavoriteNearby,
    Follow,
    FollowAck,
    GetNearby,
    JoinMap,
    LocationAck,
    LocationPush,
    LocationUpdated,
    NearbyVendorsResult,
    OrderStatusChanged,
    OrderStatusPush,
    OutboundEvent,
    Ping,
    Pong,
    Unfollow,
    UnfollowAck,
    parse_inbound,
)
from src.services.realtime_gateway.proximity import ProximityEngine
from src.services.realtime_gateway.registry import ActiveVendorRegistry

LOGGER_NAME = "realtime_gateway"


@dataclass
class NearbyQuery:
    """Результат поиска продавцов рядом."""
    vendors: list[dict[str, Any]]
    radius_meters: float
    source: str
    candidates: list[ActiveVendorRecord] = field(default_factory=list)


class RealtimeBroker:
    """Обработчик входящих сообщений realtime-шлюза."""

    def __init__(
        self,
        registry: ActiveVendorRegistry,
        connections: ConnectionManager,
        vendors: VendorRepository,
        orders: OrderRepository,
        token_verifier: TokenVerifier,
        proximity: ProximityEngine,
        *,
        broadcast_mode: BroadcastMode = BroadcastMode.GLOBAL,
        nearby_source: NearbySource = NearbySource.REGISTRY_FIRST,
        default_radius_meters: float = 500.0,
        max_radius_meters: float = 50_000.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.connections = connections
        self.proximity = proximity
        self._vendors = vendors
        self._orders = orders
        self._tokens = token_verifier
        self._broadcast_mode = broadcast_mode
        self._nearby_source = nearby_source
        self._default_radius = default_radius_meters
        self._max_radius = max_radius_meters
        self._clock = clock

        # Фоновые записи в БД
        self._pending_writes: set[asyncio.Task[None]] = set()

        self._handlers: dict[type, Callable[[str, Any], Awaitable[None]]] = {
            LocationPush: self.handle_location_push,
            JoinMap: self.handle_join_map,
            GetNearby: self.handle_get_nearby,
            Follow: self.handle_follow,
            Unfollow: self.handle_unfollow,
            OrderStatusPush: self.handle_order_status_push,
            Ping: self.handle_ping,
        }

        # Статистика
        self._messages_handled = 0
        self._errors_sent = 0
        self._persistence_failures = 0

    @property
    def vendors(self) -> VendorRepository:
        return self._vendors

    @property
    def token_verifier(self) -> TokenVerifier:
        return self._tokens

    # === ВХОД ===

    async def dispatch(self, connection_id: str, raw: str | bytes | dict[str, Any]) -> None:
        """
        Разобрать сообщение и вызвать обработчик.

        Никогда не бросает исключений наружу.
        """
        request_type: str | None = None
        try:
            message = parse_inbound(raw)
            request_type = message.type
            handler = self._handlers[type(message)]
            await handler(connection_id, message)
            self._messages_handled += 1
        except RealtimeError as e:
            await self._send_error(connection_id, e, request_type)
        except Exception as e:
            await log_error(
                f"Ошибка обработки сообщения {request_type} от {connection_id}: {e}",
                logger_name=LOGGER_NAME,
                exc_info=True,
            )
            await self._send_error(
                connection_id,
                RealtimeError(f"Error handling {request_type or 'message'}"),
                request_type,
            )

    # === ОБРАБОТЧИКИ ===

    async def handle_location_push(self, connection_id: str, message: LocationPush) -> None:
        """Принять локацию продавца и разослать её."""
        auth = self._authenticate(connection_id, message.token)

        vendor = await self._vendors.get_by_user_id(auth.user_id)
        if vendor is None:
            raise NotFound("Vendor not found")
        if vendor.is_suspended:
            raise Forbidden("Vendor is suspended")

        status = message.status or vendor.status
        record = ActiveVendorRecord(
            vendor_id=vendor.id,
            owner_user_id=vendor.user_id,
            store_name=vendor.store_name,
            status=status,
            latitude=message.lat,
            longitude=message.lon,
            connection_id=connection_id,
        )

        if status == VendorStatus.INACTIVE:
            # Продавец закончил смену: убираем с карты
            self.registry.remove(vendor.id)
            published = record.stamped(self._clock())
        else:
            self.registry.upsert(record)
            published = self.registry.get(vendor.id, include_stale=True) or record.stamped(self._clock())
            self.connections.bind_vendor(connection_id, vendor.id)

        timestamp = published.last_update_timestamp or self._clock()
        self._schedule_persist(vendor.id, message.lat, message.lon, timestamp)

        await self._publish_location(LocationUpdated(
            vendor_id=vendor.id,
            latitude=message.lat,
            longitude=message.lon,
            store_name=vendor.store_name,
            status=status,
            timestamp=timestamp,
        ))

        if status != VendorStatus.INACTIVE:
            await self._notify_followers(published)

        await self._reply(connection_id, LocationAck(vendor_id=vendor.id, timestamp=timestamp))

    async def handle_join_map(self, connection_id: str, message: JoinMap) -> None:
        """Покупатель открыл карту: топик buyer:{id} и снимок активных продавцов."""
        auth = self._authenticate(connection_id, message.token)
        await self.connections.join_buyer_topic(connection_id, buyer_topic(auth.user_id))

        conn = self.connections.get(connection_id)
        records = self.registry.snapshot()
        if conn is not None and conn.position is not None:
            vendors = [
                {**record.to_payload(), **result.to_payload()}
                for record, result in self.proximity.annotate(conn.position, records)
            ]
        else:
            vendors = [record.to_payload() for record in records]

        await self._reply(connection_id, ActiveVendorsSnapshot(vendors=vendors, count=len(vendors)))

    async def handle_get_nearby(self, connection_id: str, message: GetNearby) -> None:
        """Продавцы в радиусе от покупателя."""
        self._authenticate(connection_id, message.token)

        position = GeoPoint(message.lat, message.lon)
        self.connections.set_position(connection_id, position)

        result = await self.find_nearby(position, message.radius_meters)
        await self._reply(connection_id, NearbyVendorsResult(
            vendors=result.vendors,
            count=len(result.vendors),
            radius_meters=result.radius_meters,
            source=result.source,
        ))

        conn = self.connections.get(connection_id)
        if conn is not None:
            for candidate in result.candidates:
                await self._evaluate_favorite(conn, candidate)

    async def handle_follow(self, connection_id: str, message: Follow) -> None:
        """Подписка на продавца (токен не требуется)."""
        await self.connections.subscribe(connection_id, vendor_topic(message.vendor_id))
        await self._reply(connection_id, FollowAck(vendor_id=message.vendor_id))

        conn = self.connections.get(connection_id)
        record = self.registry.get(message.vendor_id)
        if conn is not None and record is not None:
            await self._evaluate_favorite(conn, record)

    async def handle_unfollow(self, connection_id: str, message: Unfollow) -> None:
        """Отписка от продавца."""
        await self.connections.unsubscribe(connection_id, vendor_topic(message.vendor_id))
        conn = self.connections.get(connection_id)
        if conn is not None:
            conn.favorites.forget(message.vendor_id)
        await self._reply(connection_id, UnfollowAck(vendor_id=message.vendor_id))

    async def handle_order_status_push(self, connection_id: str, message: OrderStatusPush) -> None:
        """Статус заказа уходит только в топик покупателя."""
        self._authenticate(connection_id, message.token)

        order = await self._orders.get_by_id(message.order_id)
        if order is None:
            raise NotFound("Order not found")

        event = OrderStatusChanged(
            order_id=order.id,
            status=message.status,
            timestamp=self._clock(),
        )
        sent = await self.connections.broadcast_to_topic(buyer_topic(order.buyer_id), event.to_message())
        await log_debug(
            f"Статус заказа {order.id} -> {message.status.value}, доставлено {sent}",
            logger_name=LOGGER_NAME,
        )

    async def handle_ping(self, connection_id: str, message: Ping) -> None:
        await self._reply(connection_id, Pong())

    async def on_disconnect(self, connection_id: str) -> list[str]:
        """
        Соединение закрыто: снимаем подписки и убираем из реестра
        только продавцов, которых транслировало это соединение.
        """
        removed = self.registry.remove_all_for_connection(connection_id)
        await self.connections.disconnect(connection_id)
        if removed:
            await log_info(
                f"Соединение {connection_id} закрыто, сняты продавцы: {', '.join(removed)}",
                logger_name=LOGGER_NAME,
            )
        return removed

    # === ЗАПРОСЫ (общие для WS и HTTP) ===

    def resolve_radius(self, radius_meters: float | None) -> float:
        """Радиус поиска по умолчанию и проверка верхней границы."""
        radius = radius_meters or self._default_radius
        if radius > self._max_radius:
            raise InvalidPayload(f"radiusMeters не может превышать {self._max_radius:.0f}")
        return radius

    async def find_nearby(self, position: GeoPoint, radius_meters: float | None = None) -> NearbyQuery:
        """Продавцы в радиусе от точки, ближайшие первыми."""
        radius = self.resolve_radius(radius_meters)
        candidates, source = await self.active_candidates()
        return NearbyQuery(
            vendors=self.describe_nearby(position, candidates, radius),
            radius_meters=radius,
            source=source,
            candidates=candidates,
        )

    async def active_candidates(self) -> tuple[list[ActiveVendorRecord], str]:
        """
        Кандидаты для поиска рядом.

        registry_first: живые ACTIVE-записи реестра, дополненные продавцами
        из БД, которых в реестре нет. storage: только БД.

        Returns:
            (кандидаты, фактический источник)
        """
        if self._nearby_source == NearbySource.STORAGE:
            stored = await self._vendors.find_active_vendors()
            return [ActiveVendorRecord.from_vendor(v) for v in stored], "storage"

        live = self.registry.snapshot()
        live_ids = {record.vendor_id for record in live}
        candidates = [record for record in live if record.status == VendorStatus.ACTIVE]

        try:
            stored = await self._vendors.find_active_vendors()
        except Exception as e:
            await log_warning(
                f"БД недоступна для поиска рядом, используем только реестр: {e}",
                logger_name=LOGGER_NAME,
            )
            return candidates, "registry"

        candidates.extend(
            ActiveVendorRecord.from_vendor(v)
            for v in stored
            if v.id not in live_ids and v.has_location
        )
        return candidates, "registry+storage"

    def describe_nearby(
        self,
        position: GeoPoint,
        candidates: list[ActiveVendorRecord],
        radius_meters: float,
    ) -> list[dict[str, Any]]:
        """Фильтр по радиусу + расстояния, ближайшие первыми."""
        nearby = within_radius(position, candidates, radius_meters)
        return [
            {**record.to_payload(), **result.to_payload()}
            for record, result in self.proximity.annotate(position, nearby)
        ]

    # === ФОНОВЫЕ ЗАДАЧИ ===

    async def run_eviction(self, interval_seconds: float) -> None:
        """Периодически вычищать устаревшие записи реестра."""
        while True:
            await asyncio.sleep(interval_seconds)
            evicted = self.registry.evict_stale()
            if evicted:
                await log_info(
                    f"Устаревшие продавцы сняты с карты: {', '.join(evicted)}",
                    logger_name=LOGGER_NAME,
                )

    async def drain(self) -> None:
        """Дождаться фоновых записей в БД (shutdown, тесты)."""
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "messages_handled": self._messages_handled,
            "errors_sent": self._errors_sent,
            "pending_writes": len(self._pending_writes),
            "persistence_failures": self._persistence_failures,
            "broadcast_mode": self._broadcast_mode.value,
            "nearby_source": self._nearby_source.value,
        }

    # === ВНУТРЕННЕЕ ===

    def _authenticate(self, connection_id: str, token: str | None) -> AuthContext:
        auth = self._tokens.verify_token(token)
        if auth is None:
            raise Unauthorized()
        self.connections.authenticate(connection_id, auth.user_id, auth.role)
        return auth

    def _schedule_persist(self, vendor_id: str, lat: float, lon: float, timestamp: float) -> None:
        task = asyncio.create_task(self._persist_location(vendor_id, lat, lon, timestamp))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _persist_location(self, vendor_id: str, lat: float, lon: float, timestamp: float) -> None:
        try:
            await self._vendors.update_location(vendor_id, lat, lon, timestamp)
        except PersistenceDeferred as e:
            self._persistence_failures += 1
            await log_info(e.message, type_msg=TypeMsg.WARNING, logger_name=LOGGER_NAME)

    async def _publish_location(self, event: LocationUpdated) -> int:
        message = event.to_message()
        if self._broadcast_mode == BroadcastMode.TOPIC:
            return await self.connections.broadcast_to_topic(vendor_topic(event.vendor_id), message)
        return await self.connections.broadcast_all(message)

    async def _notify_followers(self, record: ActiveVendorRecord) -> None:
        for conn in self.connections.connections_following(record.vendor_id):
            await self._evaluate_favorite(conn, record)

    async def _evaluate_favorite(self, conn: ConnectionInfo, record: ActiveVendorRecord) -> None:
        if conn.position is None or record.vendor_id not in conn.followed_vendor_ids:
            return

        result = self.proximity.measure(conn.position, record)
        if conn.favorites.observe(record.vendor_id, result.distance_meters):
            await self._reply(conn.connection_id, FavoriteNearby(
                vendor_id=record.vendor_id,
                store_name=record.store_name,
                distance_meters=round(result.distance_meters, 1),
                distance=result.distance_label,
            ))

    async def _reply(self, connection_id: str, event: OutboundEvent) -> bool:
        return await self.connections.send_personal(connection_id, event.to_message())

    async def _send_error(self, connection_id: str, error: RealtimeError, request_type: str | None) -> None:
        self._errors_sent += 1
        await log_debug(
            f"error -> {connection_id}: [{error.code}] {error.message}",
            logger_name=LOGGER_NAME,
        )
        await self._reply(connection_id, ErrorEvent(
            message=error.message,
            code=error.code,
            request_type=request_type,
        ))
