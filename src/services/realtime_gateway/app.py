# src/services/realtime_gateway/app.py
"""
FastAPI приложение Realtime Gateway.

WebSocket endpoints:
- /ws — единый канал для продавцов и покупателей

REST endpoints:
- GET /health — проверка здоровья
- GET /stats — статистика соединений и реестра
- GET /api/v1/vendors/active — активные продавцы
- GET /api/v1/vendors/nearby — продавцы в радиусе
- GET /api/v1/analytics/heatmap — тепловая карта (admin)
- GET /api/v1/analytics/clusters — кластеры продавцов (admin)
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, Literal

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from src.common.constants import TypeMsg
from src.common.exceptions import InvalidPayload
from src.common.logger import log_error, log_info, setup_logging
from src.config import settings
from src.core.auth.tokens import AuthContext, get_token_verifier
from src.core.geo.geometry import GeoPoint, cluster_by_proximity, grid_bucket_heatmap
from src.core.vendors.models import ActiveVendorRecord
from src.core.vendors.repository import OrderRepository, VendorRepository
from src.infra.database import DatabaseManager, close_db, get_db, init_db
from src.services.realtime_gateway.broker import LOGGER_NAME, RealtimeBroker
from src.services.realtime_gateway.connection_manager import ConnectionManager
from src.services.realtime_gateway.proximity import ProximityEngine
from src.services.realtime_gateway.registry import ActiveVendorRegistry

SERVICE_NAME = "realtime_gateway"


# === MODELS ===

class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""
    service: str
    status: str = "healthy"  # healthy, degraded
    version: str | None = None
    uptime_seconds: float | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)


class NearbyResponse(BaseModel):
    vendors: list[dict[str, Any]]
    count: int
    radius_meters: float
    source: str


class HeatmapPoint(BaseModel):
    latitude: float
    longitude: float
    count: int
    intensity: float
    weight: float = 0.0


class ClusterResponse(BaseModel):
    center_latitude: float
    center_longitude: float
    count: int
    vendor_ids: list[str]


# === FACTORY ===

def build_broker(db: DatabaseManager) -> RealtimeBroker:
    """Собрать брокер по настройкам."""
    realtime = settings.realtime
    return RealtimeBroker(
        registry=ActiveVendorRegistry(stale_after_seconds=realtime.STALE_AFTER_SECONDS),
        connections=ConnectionManager(proximity_threshold_meters=realtime.PROXIMITY_RADIUS_METERS),
        vendors=VendorRepository(db),
        orders=OrderRepository(db),
        token_verifier=get_token_verifier(),
        proximity=ProximityEngine(
            threshold_meters=realtime.PROXIMITY_RADIUS_METERS,
            eta_speed_kmh=settings.geo.ETA_SPEED_KMH,
        ),
        broadcast_mode=realtime.BROADCAST_MODE,
        nearby_source=realtime.NEARBY_SOURCE,
        default_radius_meters=realtime.DEFAULT_NEARBY_RADIUS_METERS,
        max_radius_meters=realtime.MAX_NEARBY_RADIUS_METERS,
    )


def create_app(broker: RealtimeBroker | None = None) -> FastAPI:
    """
    Создать приложение.

    Args:
        broker: Готовый брокер (тесты). Если не передан, lifespan
            подключает БД и собирает брокер из настроек.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Жизненный цикл приложения."""
        setup_logging()
        owns_db = broker is None

        if owns_db:
            db = await init_db()
            app.state.broker = build_broker(db)
        else:
            app.state.broker = broker
        app.state.started_at = time.monotonic()

        eviction = asyncio.create_task(
            app.state.broker.run_eviction(settings.realtime.EVICTION_INTERVAL_SECONDS)
        )
        await log_info(f"{SERVICE_NAME} запущен", type_msg=TypeMsg.INFO, logger_name=LOGGER_NAME)

        yield

        # Shutdown
        eviction.cancel()
        try:
            await eviction
        except asyncio.CancelledError:
            pass
        await app.state.broker.drain()
        if owns_db:
            await close_db()
        await log_info(f"{SERVICE_NAME} остановлен", type_msg=TypeMsg.INFO, logger_name=LOGGER_NAME)

    app = FastAPI(
        title="Street Food Realtime Gateway",
        description="WebSocket сервис живых локаций продавцов и уведомлений о близости.",
        version=settings.system.VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.deployment.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_routes(app)
    return app


# === DEPENDENCIES ===

def get_broker(request: Request) -> RealtimeBroker:
    return request.app.state.broker


def require_admin(
    request: Request,
    authorization: str | None = Header(default=None),
) -> AuthContext:
    """Bearer-токен администратора."""
    auth = get_broker(request).token_verifier.verify_token(authorization)
    if auth is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not auth.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return auth


async def _analytics_points(
    broker: RealtimeBroker,
    source: str,
) -> tuple[list[ActiveVendorRecord], dict[str, float]]:
    """Точки для аналитики и выручка по vendor_id (только для storage)."""
    if source == "live":
        return broker.registry.snapshot(), {}
    stored = await broker.vendors.find_located_vendors()
    return (
        [ActiveVendorRecord.from_vendor(v) for v in stored],
        {v.id: v.total_sales for v in stored},
    )


# === ROUTES ===

def _register_routes(app: FastAPI) -> None:

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check(request: Request) -> HealthStatus:
        """Проверка здоровья сервиса."""
        db = get_db()
        postgres = "healthy" if db.is_connected and await db.health_check() else "unavailable"
        started_at = getattr(request.app.state, "started_at", None)
        return HealthStatus(
            service=SERVICE_NAME,
            status="healthy" if postgres == "healthy" else "degraded",
            version=settings.system.VERSION,
            uptime_seconds=time.monotonic() - started_at if started_at is not None else None,
            dependencies={"postgres": postgres},
        )

    @app.get("/stats", tags=["Stats"])
    async def get_stats(broker: RealtimeBroker = Depends(get_broker)) -> dict[str, Any]:
        """Статистика соединений, реестра и брокера."""
        return {
            "connections": broker.connections.get_stats(),
            "registry": broker.registry.get_stats(),
            "broker": broker.get_stats(),
        }

    @app.get("/api/v1/vendors/active", tags=["Vendors"])
    async def active_vendors(broker: RealtimeBroker = Depends(get_broker)) -> dict[str, Any]:
        """Продавцы, транслирующие локацию прямо сейчас."""
        vendors = [record.to_payload() for record in broker.registry.snapshot()]
        return {"vendors": vendors, "count": len(vendors)}

    @app.get("/api/v1/vendors/nearby", response_model=NearbyResponse, tags=["Vendors"])
    async def nearby_vendors(
        lat: float = Query(..., ge=-90, le=90),
        lon: float = Query(..., ge=-180, le=180),
        radius_meters: float | None = Query(default=None, gt=0),
        broker: RealtimeBroker = Depends(get_broker),
    ) -> NearbyResponse:
        """Продавцы в радиусе от точки, ближайшие первыми."""
        try:
            result = await broker.find_nearby(GeoPoint(lat, lon), radius_meters)
        except InvalidPayload as e:
            raise HTTPException(status_code=400, detail=e.message)
        return NearbyResponse(
            vendors=result.vendors,
            count=len(result.vendors),
            radius_meters=result.radius_meters,
            source=result.source,
        )

    @app.get("/api/v1/analytics/heatmap", response_model=list[HeatmapPoint], tags=["Analytics"])
    async def heatmap(
        source: Literal["live", "storage"] = Query(default="live"),
        cell_size: float | None = Query(default=None, gt=0),
        broker: RealtimeBroker = Depends(get_broker),
        _admin: AuthContext = Depends(require_admin),
    ) -> list[HeatmapPoint]:
        """
        Тепловая карта продавцов.

        Для source=storage вес ячейки — суммарные продажи продавцов в ней.
        """
        points, revenue = await _analytics_points(broker, source)
        cells = grid_bucket_heatmap(
            points,
            cell_size_degrees=cell_size or settings.geo.HEATMAP_CELL_SIZE_DEGREES,
            saturation_count=settings.geo.HEATMAP_SATURATION_COUNT,
            weight=(lambda record: revenue.get(record.vendor_id, 0.0)) if revenue else None,
        )
        return [
            HeatmapPoint(
                latitude=cell.cell_latitude,
                longitude=cell.cell_longitude,
                count=cell.count,
                intensity=cell.intensity,
                weight=cell.weight,
            )
            for cell in cells
        ]

    @app.get("/api/v1/analytics/clusters", response_model=list[ClusterResponse], tags=["Analytics"])
    async def clusters(
        source: Literal["live", "storage"] = Query(default="live"),
        radius_meters: float | None = Query(default=None, gt=0),
        broker: RealtimeBroker = Depends(get_broker),
        _admin: AuthContext = Depends(require_admin),
    ) -> list[ClusterResponse]:
        """Группы близко стоящих продавцов."""
        points, _ = await _analytics_points(broker, source)
        found = cluster_by_proximity(points, radius_meters or settings.geo.CLUSTER_RADIUS_METERS)
        return [
            ClusterResponse(
                center_latitude=cluster.center_latitude,
                center_longitude=cluster.center_longitude,
                count=cluster.count,
                vendor_ids=[member.vendor_id for member in cluster.members],
            )
            for cluster in found
        ]

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        """
        Единый канал сессии.

        Сообщения — JSON с полем `type` (см. messages.py). Ответы и
        события приходят тем же каналом.
        """
        broker: RealtimeBroker = websocket.app.state.broker
        conn = await broker.connections.connect(websocket)

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                # Бинарный кадр разбирается так же, как текстовый
                raw = message.get("text") or message.get("bytes")
                await broker.dispatch(conn.connection_id, raw or "")
        except WebSocketDisconnect:
            pass
        except Exception as e:
            await log_error(
                f"WebSocket {conn.connection_id} закрыт с ошибкой: {e}",
                logger_name=LOGGER_NAME,
                exc_info=True,
            )
        finally:
            await broker.on_disconnect(conn.connection_id)


# === APP ===

app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.deployment.REALTIME_GATEWAY_HOST, port=settings.deployment.REALTIME_GATEWAY_PORT)
