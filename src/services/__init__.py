"""
Сервисы приложения.

- realtime_gateway: WebSocket-шлюз живых локаций продавцов
  (реестр активных продавцов, подписки, рассылка, близость к покупателю)
"""

__all__: list[str] = []
