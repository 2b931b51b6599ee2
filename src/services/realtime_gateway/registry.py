# src/services/realtime_gateway/registry.py
"""
Реестр активных продавцов.

Единственный источник правды о том, кто сейчас транслирует локацию.
Хранится только в памяти процесса: рестарт теряет все записи,
постоянная локация живёт в БД.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable

from src.core.vendors.models import ActiveVendorRecord


class ActiveVendorRegistry:
    """
    Потокобезопасный реестр активных продавцов.

    - Не больше одной записи на vendor_id
    - last_update_timestamp строго растёт (last-write-wins)
    - Устаревшие записи скрываются при чтении и вычищаются sweep-ом
    """

    def __init__(
        self,
        stale_after_seconds: float | None = 120.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Args:
            stale_after_seconds: Окно актуальности записи (None — без устаревания)
            clock: Источник времени в epoch-секундах
        """
        self._records: dict[str, ActiveVendorRecord] = {}
        self._lock = threading.Lock()
        self._stale_after = stale_after_seconds
        self._clock = clock

        # Для статистики
        self._total_upserts = 0
        self._rejected_upserts = 0
        self._total_evicted = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def upsert(self, record: ActiveVendorRecord) -> bool:
        """
        Вставить или перезаписать запись продавца.

        Запись без метки времени получает текущее время (и гарантированно
        новее сохранённой). Запись с явной меткой, не новее сохранённой,
        отбрасывается.

        Returns:
            True если запись принята
        """
        with self._lock:
            current = self._records.get(record.vendor_id)
            current_ts = current.last_update_timestamp if current else None

            if record.last_update_timestamp is None:
                stamp = self._clock()
                if current_ts is not None and stamp <= current_ts:
                    # Часы не успели сдвинуться — держим строгий рост
                    stamp = current_ts + 1e-6
            else:
                stamp = record.last_update_timestamp
                if current_ts is not None and stamp <= current_ts:
                    self._rejected_upserts += 1
                    return False

            # Перезапись сохраняет исходную позицию в порядке вставки
            self._records[record.vendor_id] = record.stamped(stamp)
            self._total_upserts += 1
            return True

    def remove(self, vendor_id: str) -> bool:
        """Удалить запись. Идемпотентно; True если запись была."""
        with self._lock:
            return self._records.pop(vendor_id, None) is not None

    def remove_all_for_connection(self, connection_id: str) -> list[str]:
        """
        Удалить записи, присланные через указанное соединение.

        Returns:
            ID удалённых продавцов
        """
        with self._lock:
            removed = [
                vendor_id
                for vendor_id, record in self._records.items()
                if record.connection_id == connection_id
            ]
            for vendor_id in removed:
                del self._records[vendor_id]
            return removed

    def get(self, vendor_id: str, *, include_stale: bool = False) -> ActiveVendorRecord | None:
        """Запись продавца или None (в том числе если запись устарела)."""
        with self._lock:
            record = self._records.get(vendor_id)
        if record is None:
            return None
        if not include_stale and self._is_stale(record, self._clock()):
            return None
        return record

    def snapshot(self, *, include_stale: bool = False) -> list[ActiveVendorRecord]:
        """Копия всех записей в порядке вставки."""
        with self._lock:
            records = list(self._records.values())
        if include_stale:
            return records
        now = self._clock()
        return [r for r in records if not self._is_stale(r, now)]

    def evict_stale(self) -> list[str]:
        """
        Вычистить устаревшие записи.

        Returns:
            ID удалённых продавцов
        """
        if self._stale_after is None:
            return []

        now = self._clock()
        with self._lock:
            stale = [
                vendor_id
                for vendor_id, record in self._records.items()
                if self._is_stale(record, now)
            ]
            for vendor_id in stale:
                del self._records[vendor_id]
            self._total_evicted += len(stale)
        return stale

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        with self._lock:
            return {
                "active_vendors": len(self._records),
                "total_upserts": self._total_upserts,
                "rejected_upserts": self._rejected_upserts,
                "total_evicted": self._total_evicted,
            }

    def _is_stale(self, record: ActiveVendorRecord, now: float) -> bool:
        if self._stale_after is None or record.last_update_timestamp is None:
            return False
        return now - record.last_update_timestamp > self._stale_after
