"""
Схемы сообщений WebSocket-протокола.

Входящие сообщения — tagged union по полю `type`, валидируются
на границе транспорта. Исходящие события сериализуются в camelCase.

Входящие:
- vendor.locationPush {token, lat, lon, status?}
- buyer.joinMap {token}
- buyer.getNearby {token, lat, lon, radiusMeters?}
- buyer.follow {vendorId}
- buyer.unfollow {vendorId}
- order.statusPush {token, orderId, status}
- ping

Исходящие:
- locationUpdated, activeVendorsSnapshot, nearbyVendorsResult,
  followAck, unfollowAck, orderStatusChanged, locationAck,
  favoriteNearby, pong, error {message, code}
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from src.common.constants import OrderStatus, VendorStatus
from src.common.exceptions import InvalidPayload


# Имена событий старого socket.io клиента
LEGACY_EVENT_NAMES: dict[str, str] = {
    "vendor:location": "vendor.locationPush",
    "buyer:join-map": "buyer.joinMap",
    "buyer:get-nearby": "buyer.getNearby",
    "buyer:follow-vendor": "buyer.follow",
    "buyer:unfollow-vendor": "buyer.unfollow",
    "order:status-update": "order.statusPush",
}


# === INBOUND ===

class _Inbound(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True, extra="ignore")


class LocationPush(_Inbound):
    """Продавец присылает текущую локацию."""
    type: Literal["vendor.locationPush"]
    token: str | None = None
    lat: float = Field(..., ge=-90, le=90, validation_alias=AliasChoices("lat", "latitude"))
    lon: float = Field(..., ge=-180, le=180, validation_alias=AliasChoices("lon", "longitude"))
    status: VendorStatus | None = None


class JoinMap(_Inbound):
    """Покупатель открыл карту."""
    type: Literal["buyer.joinMap"]
    token: str | None = None


class GetNearby(_Inbound):
    """Покупатель запрашивает продавцов рядом."""
    type: Literal["buyer.getNearby"]
    token: str | None = None
    lat: float = Field(..., ge=-90, le=90, validation_alias=AliasChoices("lat", "latitude"))
    lon: float = Field(..., ge=-180, le=180, validation_alias=AliasChoices("lon", "longitude"))
    radius_meters: float | None = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("radiusMeters", "radius_meters"),
    )


class Follow(_Inbound):
    """Подписка на продавца."""
    type: Literal["buyer.follow"]
    vendor_id: str = Field(..., min_length=1, validation_alias=AliasChoices("vendorId", "vendor_id"))


class Unfollow(_Inbound):
    """Отписка от продавца."""
    type: Literal["buyer.unfollow"]
    vendor_id: str = Field(..., min_length=1, validation_alias=AliasChoices("vendorId", "vendor_id"))


class OrderStatusPush(_Inbound):
    """Продавец меняет статус заказа."""
    type: Literal["order.statusPush"]
    token: str | None = None
    order_id: str = Field(..., min_length=1, validation_alias=AliasChoices("orderId", "order_id"))
    status: OrderStatus


class Ping(_Inbound):
    type: Literal["ping"]


InboundMessage = Annotated[
    Union[LocationPush, JoinMap, GetNearby, Follow, Unfollow, OrderStatusPush, Ping],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter[Any] = TypeAdapter(InboundMessage)


def parse_inbound(raw: str | bytes | dict[str, Any]) -> Any:
    """
    Разобрать и провалидировать входящее сообщение.

    Принимает JSON-строку или уже распарсенный словарь. Поле `event`
    (или `action`) старых клиентов трактуется как `type`.

    Raises:
        InvalidPayload: сообщение не соответствует ни одной схеме
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidPayload(f"Некорректный JSON: {e.msg}") from e
        except UnicodeDecodeError as e:
            raise InvalidPayload("Бинарный кадр не в UTF-8") from e

    if not isinstance(raw, dict):
        raise InvalidPayload("Сообщение должно быть JSON-объектом")

    data = dict(raw)
    if "type" not in data:
        data["type"] = data.pop("event", None) or data.pop("action", None)
    # Старые клиенты присылают {"event": ..., "data": {...}}
    if isinstance(data.get("data"), dict):
        nested = data.pop("data")
        data = {**nested, **data}
    if isinstance(data.get("type"), str):
        data["type"] = LEGACY_EVENT_NAMES.get(data["type"], data["type"])

    try:
        return _inbound_adapter.validate_python(data)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        detail = first.get("msg", "validation error")
        raise InvalidPayload(f"Некорректное сообщение ({location}): {detail}") from e


# === OUTBOUND ===

class OutboundEvent(BaseModel):
    """Базовый класс исходящих событий."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: str

    def to_message(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class LocationUpdated(OutboundEvent):
    type: Literal["locationUpdated"] = "locationUpdated"
    vendor_id: str
    latitude: float
    longitude: float
    store_name: str
    status: VendorStatus
    timestamp: float


class ActiveVendorsSnapshot(OutboundEvent):
    type: Literal["activeVendorsSnapshot"] = "activeVendorsSnapshot"
    vendors: list[dict[str, Any]]
    count: int


class NearbyVendorsResult(OutboundEvent):
    type: Literal["nearbyVendorsResult"] = "nearbyVendorsResult"
    vendors: list[dict[str, Any]]
    count: int
    radius_meters: float
    source: str


class FollowAck(OutboundEvent):
    type: Literal["followAck"] = "followAck"
    vendor_id: str
    success: bool = True


class UnfollowAck(OutboundEvent):
    type: Literal["unfollowAck"] = "unfollowAck"
    vendor_id: str
    success: bool = True


class OrderStatusChanged(OutboundEvent):
    type: Literal["orderStatusChanged"] = "orderStatusChanged"
    order_id: str
    status: OrderStatus
    timestamp: float


class LocationAck(OutboundEvent):
    type: Literal["locationAck"] = "locationAck"
    vendor_id: str
    timestamp: float | None = None
    success: bool = True


class FavoriteNearby(OutboundEvent):
    type: Literal["favoriteNearby"] = "favoriteNearby"
    vendor_id: str
    store_name: str
    distance_meters: float
    distance: str


class Pong(OutboundEvent):
    type: Literal["pong"] = "pong"


class ErrorEvent(OutboundEvent):
    type: Literal["error"] = "error"
    message: str
    code: str
    request_type: str | None = None
