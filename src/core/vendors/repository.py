"""
Репозитории постоянного хранилища продавцов и заказов.
Реализуют паттерн Repository поверх DatabaseManager.

Ошибки чтения пробрасываются вызывающему коду: брокер превращает их
в событие error. Ошибка записи локации оборачивается в PersistenceDeferred.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from src.common.constants import TypeMsg, VendorStatus
from src.common.exceptions import PersistenceDeferred
from src.common.logger import log_info
from src.core.vendors.models import Order, Vendor
from src.infra.database import DatabaseManager


_VENDOR_COLUMNS = """
    id, user_id, store_name, category, status, latitude, longitude,
    is_suspended, total_sales, last_location_time
"""


def _vendor_from_row(row: Any) -> Vendor:
    return Vendor(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        store_name=row["store_name"],
        category=row["category"],
        status=VendorStatus(row["status"]),
        latitude=row["latitude"],
        longitude=row["longitude"],
        is_suspended=row["is_suspended"],
        total_sales=row["total_sales"] or 0.0,
        last_location_time=row["last_location_time"],
    )


class VendorRepository:
    """Репозиторий продавцов."""

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    async def get_by_user_id(self, user_id: str) -> Optional[Vendor]:
        """Продавец, принадлежащий пользователю, или None."""
        row = await self._db.fetchrow(
            f"SELECT {_VENDOR_COLUMNS} FROM vendors WHERE user_id = $1",
            user_id,
        )
        return _vendor_from_row(row) if row else None

    async def find_active_vendors(self) -> list[Vendor]:
        """Все активные и не заблокированные продавцы с известной локацией."""
        rows = await self._db.fetch(
            f"""
            SELECT {_VENDOR_COLUMNS}
            FROM vendors
            WHERE status = $1
              AND is_suspended = FALSE
              AND latitude IS NOT NULL
              AND longitude IS NOT NULL
            """,
            VendorStatus.ACTIVE.value,
        )
        return [_vendor_from_row(row) for row in rows]

    async def find_located_vendors(self) -> list[Vendor]:
        """Все продавцы с сохранённой локацией, независимо от статуса (аналитика)."""
        rows = await self._db.fetch(
            f"""
            SELECT {_VENDOR_COLUMNS}
            FROM vendors
            WHERE latitude IS NOT NULL
              AND longitude IS NOT NULL
            """
        )
        return [_vendor_from_row(row) for row in rows]

    async def update_location(
        self,
        vendor_id: str,
        lat: float,
        lon: float,
        timestamp: float | None = None,
    ) -> None:
        """
        Сохранить последнюю локацию продавца.

        Запись с меткой не новее сохранённой пропускается: фоновые записи
        могут завершаться не в порядке отправки.

        Raises:
            PersistenceDeferred: запись не удалась
        """
        moment = (
            datetime.fromtimestamp(timestamp, tz=timezone.utc)
            if timestamp is not None
            else datetime.now(timezone.utc)
        )
        try:
            result = await self._db.execute(
                """
                UPDATE vendors
                SET latitude = $2, longitude = $3, last_location_time = $4
                WHERE id = $1
                  AND (last_location_time IS NULL OR last_location_time < $4)
                """,
                vendor_id,
                lat,
                lon,
                moment,
            )
        except Exception as e:
            raise PersistenceDeferred(vendor_id, e) from e

        if result == "UPDATE 0":
            await log_info(
                f"Локация продавца {vendor_id} устарела или продавец не найден, запись пропущена",
                type_msg=TypeMsg.DEBUG,
            )
            return

        await log_info(f"Локация продавца {vendor_id} сохранена", type_msg=TypeMsg.DEBUG)


class OrderRepository:
    """Репозиторий заказов (только чтение)."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        """Заказ по ID или None."""
        row = await self._db.fetchrow(
            "SELECT id, buyer_id, vendor_id, status FROM orders WHERE id = $1",
            order_id,
        )
        if row is None:
            return None
        return Order(
            id=str(row["id"]),
            buyer_id=str(row["buyer_id"]),
            vendor_id=str(row["vendor_id"]),
            status=row["status"],
        )
