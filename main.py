#!/usr/bin/env python3
# main.py
"""
Главная точка входа Street Food Realtime.

Режимы:
    python main.py realtime_gateway                 # WebSocket-шлюз (по умолчанию)
    python main.py dev_token <user_id> [role]       # выпустить JWT для разработки
"""

from __future__ import annotations

import asyncio
import signal
import sys

from src.config import settings
from src.common.logger import setup_logging, log_info, log_error
from src.common.constants import TypeMsg


VALID_MODES = ("realtime_gateway",)

# Глобальный флаг для graceful shutdown
_shutdown_event: asyncio.Event | None = None
_running_tasks: list[asyncio.Task] = []


def setup_signal_handlers() -> None:
    """Настраивает обработчики сигналов для graceful shutdown."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        if _shutdown_event and not _shutdown_event.is_set():
            print(f"\nПолучен сигнал остановки (sig={sig}), завершаем работу...")
            _shutdown_event.set()
            for task in _running_tasks:
                if not task.done():
                    task.cancel()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))


async def run_realtime_gateway() -> None:
    """Запускает Realtime Gateway (живые локации, близость, статусы заказов)."""
    import uvicorn

    await log_info(
        f"Запуск Realtime Gateway на порту {settings.deployment.REALTIME_GATEWAY_PORT}...",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        "src.services.realtime_gateway.app:app",
        host=settings.deployment.REALTIME_GATEWAY_HOST,
        port=settings.deployment.REALTIME_GATEWAY_PORT,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    server = uvicorn.Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info("Realtime Gateway: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


def issue_dev_token(user_id: str, role: str | None = None) -> str:
    """Выпустить токен для локальной разработки."""
    from src.core.auth.tokens import get_token_verifier

    return get_token_verifier().issue_token(user_id, role)


async def main(mode: str | None = None) -> None:
    """
    Главная функция запуска.

    Args:
        mode: Режим запуска. Если None, берётся COMPONENT_MODE из настроек.
    """
    setup_logging()
    setup_signal_handlers()

    if mode is None:
        mode = settings.system.COMPONENT_MODE or "realtime_gateway"

    await log_info(
        f"{settings.system.PROJECT_NAME} v{settings.system.VERSION}: запуск в режиме '{mode}'",
        type_msg=TypeMsg.INFO,
    )

    if mode == "realtime_gateway":
        task = asyncio.create_task(run_realtime_gateway())
        _running_tasks.append(task)
        try:
            await task
        except asyncio.CancelledError:
            await log_info("Остановка завершена", type_msg=TypeMsg.INFO)
    else:
        await log_error(f"Неизвестный режим: {mode}")


def print_usage() -> None:
    print(__doc__)


if __name__ == "__main__":
    mode = None

    if len(sys.argv) > 1:
        arg = sys.argv[1].lower()
        if arg in ("--help", "-h"):
            print_usage()
            sys.exit(0)
        if arg == "dev_token":
            if len(sys.argv) < 3:
                print("Ошибка: укажите user_id")
                print_usage()
                sys.exit(1)
            print(issue_dev_token(sys.argv[2], sys.argv[3] if len(sys.argv) > 3 else None))
            sys.exit(0)
        if arg not in VALID_MODES:
            print(f"Ошибка: неизвестный режим '{arg}'")
            print_usage()
            sys.exit(1)
        mode = arg

    try:
        asyncio.run(main(mode))
    except KeyboardInterrupt:
        pass
