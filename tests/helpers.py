# tests/helpers.py
"""
Вспомогательные объекты для тестов realtime-шлюза.
"""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

from src.common.constants import VendorStatus
from src.core.vendors.models import ActiveVendorRecord


TEST_JWT_SECRET = "test-jwt-secret-key-for-pytest-runs"

# Джакарта: покупатель и продавец примерно в 840 м друг от друга
JAKARTA_BUYER = (-6.2088, 106.8456)
JAKARTA_VENDOR = (-6.2150, 106.8500)


class FakeClock:
    """Управляемые часы для реестра."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_websocket() -> MagicMock:
    """Мок WebSocket: accept/send_json записывают вызовы."""
    ws = MagicMock()
    ws.accept = AsyncMock()
    ws.send_json = AsyncMock()
    return ws


def sent_messages(ws: MagicMock) -> list[dict[str, Any]]:
    """Все сообщения, отправленные в мок WebSocket."""
    return [c.args[0] for c in ws.send_json.call_args_list]


def sent_of_type(ws: MagicMock, message_type: str) -> list[dict[str, Any]]:
    return [m for m in sent_messages(ws) if m.get("type") == message_type]


def make_record(
    vendor_id: str = "v1",
    lat: float = JAKARTA_VENDOR[0],
    lon: float = JAKARTA_VENDOR[1],
    *,
    status: VendorStatus = VendorStatus.ACTIVE,
    timestamp: float | None = None,
    connection_id: str | None = None,
) -> ActiveVendorRecord:
    return ActiveVendorRecord(
        vendor_id=vendor_id,
        owner_user_id=f"owner-{vendor_id}",
        store_name=f"Store {vendor_id}",
        status=status,
        latitude=lat,
        longitude=lon,
        last_update_timestamp=timestamp,
        connection_id=connection_id,
    )
