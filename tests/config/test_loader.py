# tests/config/test_loader.py
"""
Тесты для модуля загрузки конфигурации.
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from src.common.constants import BroadcastMode, NearbySource
from src.config.loader import (
    DEV_JWT_SECRET,
    AuthSettings,
    DatabaseSettings,
    GeoSettings,
    RealtimeSettings,
    Settings,
    SystemSettings,
    get_config_path,
    get_project_root,
    get_settings,
    load_config_json,
)


class TestGetProjectRoot:
    """Тесты для функции get_project_root."""

    def test_returns_path_object(self) -> None:
        """Проверяет, что возвращается объект Path."""
        assert isinstance(get_project_root(), Path)

    def test_root_contains_src_and_config(self) -> None:
        """Проверяет наличие директорий src и config в корне."""
        root = get_project_root()
        assert (root / "src").exists()
        assert (root / "config").exists()


class TestGetConfigPath:
    """Тесты для функции get_config_path."""

    def test_path_ends_with_config_json(self) -> None:
        path = get_config_path()
        assert path.name == "config.json"
        assert path.parent.name == "config"


class TestLoadConfigJson:
    """Тесты для функции load_config_json."""

    def test_contains_required_keys(self) -> None:
        """Проверяет наличие обязательных ключей."""
        config = load_config_json()

        for key in ("PROJECT_NAME", "VERSION", "PROXIMITY_RADIUS_METERS", "STALE_AFTER_SECONDS"):
            assert key in config, f"Отсутствует ключ: {key}"

    def test_raises_file_not_found(self, tmp_path: Path) -> None:
        """Проверяет исключение при отсутствии файла."""
        with patch("src.config.loader.get_config_path") as mock_path:
            mock_path.return_value = tmp_path / "nonexistent.json"

            with pytest.raises(FileNotFoundError):
                load_config_json()

    def test_explicit_path(self, temp_config_file: Path) -> None:
        assert load_config_json(temp_config_file)["PROJECT_NAME"] == "streetfood_test"


class TestSectionDefaults:
    """Значения по умолчанию секций."""

    def test_system(self) -> None:
        settings = SystemSettings()

        assert settings.PROJECT_NAME == "streetfood_realtime"
        assert settings.COMPONENT_MODE == "realtime_gateway"

    def test_realtime(self) -> None:
        settings = RealtimeSettings()

        assert settings.PROXIMITY_RADIUS_METERS == 500.0
        assert settings.STALE_AFTER_SECONDS == 120
        assert settings.BROADCAST_MODE == BroadcastMode.GLOBAL
        assert settings.NEARBY_SOURCE == NearbySource.REGISTRY_FIRST

    def test_geo(self) -> None:
        settings = GeoSettings()

        assert settings.HEATMAP_CELL_SIZE_DEGREES == 0.01
        assert settings.HEATMAP_SATURATION_COUNT == 10
        assert settings.ETA_SPEED_KMH == 30.0

    def test_database_dsn(self) -> None:
        settings = DatabaseSettings(DB_USER="u", DB_PASSWORD="p", DB_HOST="h", DB_PORT=1, DB_NAME="d")

        assert settings.dsn == "postgresql://u:p@h:1/d"

    def test_auth_secret_from_env(self) -> None:
        """JWT_SECRET из окружения имеет приоритет."""
        with patch.dict(os.environ, {"JWT_SECRET": "from-env-secret"}):
            assert AuthSettings(JWT_SECRET="").JWT_SECRET == "from-env-secret"

    def test_auth_secret_fallback(self) -> None:
        with patch.dict(os.environ, {"JWT_SECRET": ""}):
            assert AuthSettings(JWT_SECRET="").JWT_SECRET == DEV_JWT_SECRET


class TestSettingsFromConfigJson:
    """Тесты для Settings.from_config_json."""

    def test_loads_sections(self, temp_config_file: Path) -> None:
        settings = Settings.from_config_json(temp_config_file)

        assert settings.system.PROJECT_NAME == "streetfood_test"
        assert settings.deployment.CORS_ORIGINS == ["http://localhost:3000"]
        assert settings.logging.LOG_FORMAT == "json"
        assert settings.database.DB_NAME == "streetfood_test"
        assert settings.auth.JWT_EXPIRE_SECONDS == 3600
        assert settings.realtime.PROXIMITY_RADIUS_METERS == 400
        assert settings.realtime.BROADCAST_MODE == BroadcastMode.TOPIC
        assert settings.realtime.NEARBY_SOURCE == NearbySource.STORAGE
        assert settings.geo.CLUSTER_RADIUS_METERS == 250

    def test_defaults_for_missing_keys(self, temp_config_file: Path) -> None:
        settings = Settings.from_config_json(temp_config_file)

        assert settings.realtime.EVICTION_INTERVAL_SECONDS == 30
        assert settings.geo.ETA_SPEED_KMH == 30.0

    def test_port_from_env(self, temp_config_file: Path) -> None:
        with patch.dict(os.environ, {"PORT": "8123"}):
            settings = Settings.from_config_json(temp_config_file)

        assert settings.deployment.REALTIME_GATEWAY_PORT == 8123

    def test_db_password_from_env(self, temp_config_file: Path) -> None:
        with patch.dict(os.environ, {"DB_PASSWORD": "secret"}):
            settings = Settings.from_config_json(temp_config_file)

        assert settings.database.DB_PASSWORD == "secret"

    def test_invalid_broadcast_mode(self, temp_config_file: Path, mock_config: dict) -> None:
        import json

        mock_config["BROADCAST_MODE"] = "carrier-pigeon"
        temp_config_file.write_text(json.dumps(mock_config))

        with pytest.raises(ValueError):
            Settings.from_config_json(temp_config_file)


class TestGetSettings:
    """Тесты для синглтона настроек."""

    def test_cached(self) -> None:
        assert get_settings() is get_settings()

    def test_project_config_is_valid(self) -> None:
        settings = get_settings()

        assert settings.deployment.REALTIME_GATEWAY_PORT > 0
        assert settings.realtime.STALE_AFTER_SECONDS > 0
