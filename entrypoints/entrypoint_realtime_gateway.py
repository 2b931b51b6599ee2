#!/usr/bin/env python3
"""
Entrypoint для Realtime Gateway.

Запуск:
    python entrypoints/entrypoint_realtime_gateway.py

Порт по умолчанию: 5000
"""

import sys
from pathlib import Path

# Добавляем корневую директорию проекта в путь
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

import uvicorn

from src.config import settings


def main() -> None:
    """Запустить Realtime Gateway."""
    uvicorn.run(
        "src.services.realtime_gateway.app:app",
        host=settings.deployment.REALTIME_GATEWAY_HOST,
        port=settings.deployment.REALTIME_GATEWAY_PORT,
        reload=settings.system.DEBUG,
        log_level=settings.system.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
