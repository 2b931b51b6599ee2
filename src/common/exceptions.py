"""
Иерархия ошибок realtime-ядра.

Все ошибки обработки входящих сообщений наследуются от RealtimeError
и превращаются брокером в событие `error` для отправителя.
"""

from __future__ import annotations


class RealtimeError(Exception):
    """Базовая ошибка обработки сообщения."""

    code: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthorized(RealtimeError):
    """Невалидный или отсутствующий токен."""

    code = "unauthorized"

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class NotFound(RealtimeError):
    """Продавец или заказ не найден."""

    code = "not_found"


class Forbidden(RealtimeError):
    """Действие запрещено (например, продавец заблокирован)."""

    code = "forbidden"


class InvalidPayload(RealtimeError):
    """Сообщение не прошло валидацию схемы."""

    code = "invalid_payload"


class InsufficientData(RealtimeError, ValueError):
    """Недостаточно данных для геовычислений (например, тренд по <2 точкам)."""

    code = "insufficient_data"


class PersistenceDeferred(RealtimeError):
    """
    Запись в БД не удалась после принятого in-memory обновления.

    Только логируется, клиенту не отправляется.
    """

    code = "persistence_deferred"

    def __init__(self, vendor_id: str, cause: BaseException | None = None) -> None:
        super().__init__(f"Не удалось сохранить локацию продавца {vendor_id}: {cause}")
        self.vendor_id = vendor_id
        self.cause = cause
