# src/core/vendors/models.py
"""
Модели данных продавцов и заказов.

Vendor / Order — строки постоянного хранилища (только чтение для ядра).
ActiveVendorRecord — эфемерная запись реестра активных продавцов.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.common.constants import OrderStatus, VendorStatus


class Vendor(BaseModel):
    """Продавец из постоянного хранилища."""

    id: str = Field(..., description="ID продавца")
    user_id: str = Field(..., description="ID пользователя-владельца")
    store_name: str = Field(..., description="Название точки")
    category: Optional[str] = Field(None, description="Категория еды")
    status: VendorStatus = Field(VendorStatus.INACTIVE, description="Статус продавца")
    latitude: Optional[float] = Field(None, ge=-90, le=90, description="Широта")
    longitude: Optional[float] = Field(None, ge=-180, le=180, description="Долгота")
    is_suspended: bool = Field(False, description="Заблокирован администратором")
    total_sales: float = Field(0.0, ge=0, description="Суммарные продажи")
    last_location_time: Optional[datetime] = Field(None, description="Время последней локации")

    class Config:
        from_attributes = True

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class Order(BaseModel):
    """Заказ (нужен только для адресации событий покупателю)."""

    id: str
    buyer_id: str
    vendor_id: str
    status: OrderStatus = OrderStatus.PENDING

    class Config:
        from_attributes = True


@dataclass(frozen=True)
class ActiveVendorRecord:
    """Живая позиция продавца, транслирующего локацию."""
    vendor_id: str
    owner_user_id: str
    store_name: str
    status: VendorStatus
    latitude: float
    longitude: float
    last_update_timestamp: float | None = None  # epoch секунды; None — проставит реестр
    connection_id: str | None = None

    @classmethod
    def from_vendor(cls, vendor: Vendor) -> "ActiveVendorRecord":
        """Запись из строки хранилища (только для продавцов с локацией)."""
        if not vendor.has_location:
            raise ValueError(f"У продавца {vendor.id} нет сохранённой локации")
        return cls(
            vendor_id=vendor.id,
            owner_user_id=vendor.user_id,
            store_name=vendor.store_name,
            status=vendor.status,
            latitude=vendor.latitude,  # type: ignore[arg-type]
            longitude=vendor.longitude,  # type: ignore[arg-type]
            last_update_timestamp=(
                vendor.last_location_time.timestamp() if vendor.last_location_time else None
            ),
        )

    def stamped(self, timestamp: float) -> "ActiveVendorRecord":
        """Копия записи с новой меткой времени."""
        return replace(self, last_update_timestamp=timestamp)

    def to_payload(self) -> dict[str, Any]:
        """Представление для клиентов (camelCase, как ждёт фронтенд)."""
        return {
            "vendorId": self.vendor_id,
            "userId": self.owner_user_id,
            "storeName": self.store_name,
            "status": self.status.value,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": self.last_update_timestamp,
        }
