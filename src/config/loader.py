"""
Загрузчик конфигурации проекта.
Единственный источник истины — config/config.json.
Секретные данные переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.common.constants import BroadcastMode, NearbySource


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации."""
    return get_project_root() / "config" / "config.json"


def load_config_json(path: Path | None = None) -> dict[str, Any]:
    """Загружает config.json и возвращает словарь."""
    config_path = path or get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        return json.load(f)


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "streetfood_realtime"
    VERSION: str = "1.0.0"
    DEBUG: bool = True
    LOG_LEVEL: str = "DEBUG"
    ENVIRONMENT: str = "development"
    COMPONENT_MODE: str = "realtime_gateway"


class DeploymentSettings(BaseModel):
    """Настройки развертывания."""
    REALTIME_GATEWAY_HOST: str = "0.0.0.0"
    REALTIME_GATEWAY_PORT: int = 5000
    CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "DEBUG"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760


class DatabaseSettings(BaseModel):
    """Настройки PostgreSQL."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "streetfood"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 2
    DB_MAX_POOL_SIZE: int = 10
    DB_COMMAND_TIMEOUT: int = 30

    @field_validator("DB_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @property
    def dsn(self) -> str:
        """Возвращает DSN для подключения к PostgreSQL."""
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


# Только для локальной разработки; в проде задаётся через JWT_SECRET
DEV_JWT_SECRET = "streetfood-dev-secret-key-change-me"


class AuthSettings(BaseModel):
    """Настройки проверки JWT."""
    JWT_SECRET: str = DEV_JWT_SECRET
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_SECONDS: int = 7 * 24 * 3600

    @field_validator("JWT_SECRET", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Секрет из окружения имеет приоритет."""
        return os.getenv("JWT_SECRET", "") or v or DEV_JWT_SECRET


class RealtimeSettings(BaseModel):
    """Настройки realtime-шлюза."""
    PROXIMITY_RADIUS_METERS: float = 500.0
    DEFAULT_NEARBY_RADIUS_METERS: float = 500.0
    MAX_NEARBY_RADIUS_METERS: float = 50_000.0
    STALE_AFTER_SECONDS: int = 120
    EVICTION_INTERVAL_SECONDS: int = 30
    BROADCAST_MODE: BroadcastMode = BroadcastMode.GLOBAL
    NEARBY_SOURCE: NearbySource = NearbySource.REGISTRY_FIRST


class GeoSettings(BaseModel):
    """Настройки геоаналитики."""
    HEATMAP_CELL_SIZE_DEGREES: float = 0.01  # ~1 км
    HEATMAP_SATURATION_COUNT: int = 10
    CLUSTER_RADIUS_METERS: float = 500.0
    ETA_SPEED_KMH: float = 30.0


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    system: SystemSettings = Field(default_factory=SystemSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)
    geo: GeoSettings = Field(default_factory=GeoSettings)

    @classmethod
    def from_config_json(cls, path: Path | None = None) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Секреты переопределяются из переменных окружения.
        """
        config_data = load_config_json(path)

        # Фильтруем комментарии (ключи, начинающиеся с _comment_)
        data = {k: v for k, v in config_data.items() if not k.startswith("_comment_")}

        return cls(
            system=SystemSettings(
                PROJECT_NAME=data.get("PROJECT_NAME", "streetfood_realtime"),
                VERSION=data.get("VERSION", "1.0.0"),
                DEBUG=data.get("DEBUG", True),
                LOG_LEVEL=data.get("LOG_LEVEL", "DEBUG"),
                ENVIRONMENT=data.get("ENVIRONMENT", "development"),
                COMPONENT_MODE=os.getenv("COMPONENT_MODE", data.get("COMPONENT_MODE", "realtime_gateway")),
            ),
            deployment=DeploymentSettings(
                REALTIME_GATEWAY_HOST=data.get("REALTIME_GATEWAY_HOST", "0.0.0.0"),
                REALTIME_GATEWAY_PORT=int(os.getenv("PORT", data.get("REALTIME_GATEWAY_PORT", 5000))),
                CORS_ORIGINS=data.get("CORS_ORIGINS", ["http://localhost:5173"]),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=data.get("LOG_LEVEL", "DEBUG"),
                LOG_TO_FILE=data.get("LOG_TO_FILE", False),
                LOG_FILE_PATH=data.get("LOG_FILE_PATH", "logs/app.log"),
                LOG_FORMAT=data.get("LOG_FORMAT", "colored"),
                LOG_MAX_BYTES=data.get("LOG_MAX_BYTES", 10485760),
            ),
            database=DatabaseSettings(
                DB_HOST=os.getenv("DB_HOST", data.get("DB_HOST", "localhost")),
                DB_PORT=int(os.getenv("DB_PORT", data.get("DB_PORT", 5432))),
                DB_NAME=os.getenv("DB_NAME", data.get("DB_NAME", "streetfood")),
                DB_USER=os.getenv("DB_USER", data.get("DB_USER", "postgres")),
                DB_PASSWORD=os.getenv("DB_PASSWORD", data.get("DB_PASSWORD", "")),
                DB_MIN_POOL_SIZE=data.get("DB_MIN_POOL_SIZE", 2),
                DB_MAX_POOL_SIZE=data.get("DB_MAX_POOL_SIZE", 10),
                DB_COMMAND_TIMEOUT=data.get("DB_COMMAND_TIMEOUT", 30),
            ),
            auth=AuthSettings(
                JWT_SECRET=data.get("JWT_SECRET", ""),
                JWT_ALGORITHM=data.get("JWT_ALGORITHM", "HS256"),
                JWT_EXPIRE_SECONDS=data.get("JWT_EXPIRE_SECONDS", 7 * 24 * 3600),
            ),
            realtime=RealtimeSettings(
                PROXIMITY_RADIUS_METERS=data.get("PROXIMITY_RADIUS_METERS", 500.0),
                DEFAULT_NEARBY_RADIUS_METERS=data.get("DEFAULT_NEARBY_RADIUS_METERS", 500.0),
                MAX_NEARBY_RADIUS_METERS=data.get("MAX_NEARBY_RADIUS_METERS", 50_000.0),
                STALE_AFTER_SECONDS=data.get("STALE_AFTER_SECONDS", 120),
                EVICTION_INTERVAL_SECONDS=data.get("EVICTION_INTERVAL_SECONDS", 30),
                BROADCAST_MODE=data.get("BROADCAST_MODE", BroadcastMode.GLOBAL),
                NEARBY_SOURCE=data.get("NEARBY_SOURCE", NearbySource.REGISTRY_FIRST),
            ),
            geo=GeoSettings(
                HEATMAP_CELL_SIZE_DEGREES=data.get("HEATMAP_CELL_SIZE_DEGREES", 0.01),
                HEATMAP_SATURATION_COUNT=data.get("HEATMAP_SATURATION_COUNT", 10),
                CLUSTER_RADIUS_METERS=data.get("CLUSTER_RADIUS_METERS", 500.0),
                ETA_SPEED_KMH=data.get("ETA_SPEED_KMH", 30.0),
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Использует кэширование для производительности.
    """
    from dotenv import load_dotenv

    # Загружаем .env файл
    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
