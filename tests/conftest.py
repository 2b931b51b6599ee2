# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-key-for-pytest-runs")
os.environ.setdefault("DB_PASSWORD", "test_password")

from src.common.constants import VendorStatus
from src.core.auth.tokens import TokenVerifier
from src.core.vendors.models import Order, Vendor
from src.core.vendors.repository import OrderRepository, VendorRepository
from src.services.realtime_gateway.broker import RealtimeBroker
from src.services.realtime_gateway.connection_manager import ConnectionManager
from src.services.realtime_gateway.proximity import ProximityEngine
from src.services.realtime_gateway.registry import ActiveVendorRegistry
from tests.helpers import JAKARTA_VENDOR, TEST_JWT_SECRET, FakeClock


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "=== Системные ===",
        "PROJECT_NAME": "streetfood_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "LOG_LEVEL": "DEBUG",
        "ENVIRONMENT": "test",
        "COMPONENT_MODE": "realtime_gateway",
        "REALTIME_GATEWAY_HOST": "127.0.0.1",
        "REALTIME_GATEWAY_PORT": 5055,
        "CORS_ORIGINS": ["http://localhost:3000"],
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "LOG_FORMAT": "json",
        "DB_HOST": "localhost",
        "DB_PORT": 5432,
        "DB_NAME": "streetfood_test",
        "DB_USER": "postgres",
        "JWT_ALGORITHM": "HS256",
        "JWT_EXPIRE_SECONDS": 3600,
        "PROXIMITY_RADIUS_METERS": 400,
        "STALE_AFTER_SECONDS": 60,
        "BROADCAST_MODE": "topic",
        "NEARBY_SOURCE": "storage",
        "HEATMAP_CELL_SIZE_DEGREES": 0.02,
        "CLUSTER_RADIUS_METERS": 250,
    }


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_db() -> AsyncMock:
    """Мок менеджера базы данных."""
    db = AsyncMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="UPDATE 1")
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock: FakeClock) -> ActiveVendorRegistry:
    """Реестр с управляемыми часами и окном актуальности 120 с."""
    return ActiveVendorRegistry(stale_after_seconds=120.0, clock=clock)


@pytest.fixture
def token_verifier() -> TokenVerifier:
    return TokenVerifier(secret=TEST_JWT_SECRET)


# =============================================================================
# ФИКСТУРЫ МОДЕЛЕЙ
# =============================================================================

@pytest.fixture
def sample_vendor() -> Vendor:
    """Продавец из БД."""
    return Vendor(
        id="v1",
        user_id="u-vendor-1",
        store_name="Bakso Pak Kumis",
        category="noodles",
        status=VendorStatus.ACTIVE,
        latitude=JAKARTA_VENDOR[0],
        longitude=JAKARTA_VENDOR[1],
        total_sales=1500.0,
        last_location_time=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def sample_vendor_row(sample_vendor: Vendor) -> dict[str, Any]:
    """Строка vendors, как её вернёт asyncpg."""
    row = sample_vendor.model_dump()
    row["status"] = sample_vendor.status.value
    return row


@pytest.fixture
def sample_order() -> Order:
    return Order(id="o1", buyer_id="u-buyer-1", vendor_id="v1")


# =============================================================================
# ФИКСТУРЫ БРОКЕРА
# =============================================================================

@pytest.fixture
def vendor_repo(sample_vendor: Vendor) -> MagicMock:
    """Мок VendorRepository: пользователь u-vendor-1 владеет v1."""
    repo = MagicMock(spec=VendorRepository)

    async def get_by_user_id(user_id: str) -> Vendor | None:
        return sample_vendor if user_id == sample_vendor.user_id else None

    repo.get_by_user_id = AsyncMock(side_effect=get_by_user_id)
    repo.find_active_vendors = AsyncMock(return_value=[])
    repo.find_located_vendors = AsyncMock(return_value=[sample_vendor])
    repo.update_location = AsyncMock(return_value=None)
    return repo


@pytest.fixture
def order_repo(sample_order: Order) -> MagicMock:
    repo = MagicMock(spec=OrderRepository)

    async def get_by_id(order_id: str) -> Order | None:
        return sample_order if order_id == sample_order.id else None

    repo.get_by_id = AsyncMock(side_effect=get_by_id)
    return repo


@pytest.fixture
def broker(
    registry: ActiveVendorRegistry,
    vendor_repo: MagicMock,
    order_repo: MagicMock,
    token_verifier: TokenVerifier,
    clock: FakeClock,
) -> RealtimeBroker:
    """Брокер на моках репозиториев с порогом близости 500 м."""
    return RealtimeBroker(
        registry=registry,
        connections=ConnectionManager(proximity_threshold_meters=500.0),
        vendors=vendor_repo,
        orders=order_repo,
        token_verifier=token_verifier,
        proximity=ProximityEngine(threshold_meters=500.0),
        clock=clock,
    )


# =============================================================================
# УТИЛИТЫ
# =============================================================================

@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file
