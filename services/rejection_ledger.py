"""
Журнал отклонённых курьером заказов.

Хранится одна запись на курьера: дата отклонения + набор id заказов.
Отклонение в другой день заменяет запись целиком (без слияния).
Запись старше REJECTION_TTL_DAYS календарных дней удаляется лениво,
при следующем чтении.

Сбои хранилища не блокируют основной сценарий: чтение считается
"отклонений нет", ошибка записи только логируется.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, FrozenSet, Optional, Set

from services.errors import PersistenceFailure
from services.storage import KeyValueStorage

logger = logging.getLogger(__name__)

REJECTED_ORDERS_KEY = "rejected_orders"
REJECTION_TTL_DAYS = 3


@dataclass(frozen=True, slots=True)
class RejectedOrdersRecord:
    date: date
    order_ids: FrozenSet[str]

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "orderIds": sorted(self.order_ids),
        }

    @classmethod
    def from_dict(cls, d: dict) -> RejectedOrdersRecord:
        return cls(
            date=date.fromisoformat(d["date"]),
            order_ids=frozenset(str(x) for x in d["orderIds"]),
        )


class RejectionLedger:
    """Журнал отклонений одного курьера."""

    def __init__(
        self,
        storage: KeyValueStorage,
        owner: str | int,
        ttl_days: int = REJECTION_TTL_DAYS,
        today: Callable[[], date] = date.today,
    ):
        self._storage = storage
        self._key = f"{REJECTED_ORDERS_KEY}:{owner}"
        self._ttl_days = ttl_days
        self._today = today

    def _is_expired(self, record: RejectedOrdersRecord) -> bool:
        return (self._today() - record.date).days > self._ttl_days

    async def _load(self) -> Optional[RejectedOrdersRecord]:
        """Прочитать запись; битые данные и сбои хранилища = записи нет."""
        try:
            data = await self._storage.get_json(self._key)
        except PersistenceFailure as e:
            logger.warning("Rejected orders read failed, assuming none: %s", e)
            return None
        if not data:
            return None
        try:
            return RejectedOrdersRecord.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Rejected orders record is corrupted, ignoring: %s", e)
            return None

    async def reject(self, order_id: str) -> None:
        """Добавить заказ в сегодняшнюю запись (или начать новую)."""
        order_id = str(order_id)
        today = self._today()
        existing = await self._load()

        if existing and existing.date == today:
            record = RejectedOrdersRecord(today, existing.order_ids | {order_id})
        else:
            record = RejectedOrdersRecord(today, frozenset({order_id}))

        try:
            await self._storage.set_json(self._key, record.to_dict())
            logger.info("Order %s rejected (%s ids on %s)", order_id, len(record.order_ids), today)
        except PersistenceFailure as e:
            logger.error("Failed to store rejected order %s: %s", order_id, e)

    async def list_active(self) -> Set[str]:
        """Актуальные отклонённые id; протухшая запись удаляется."""
        record = await self._load()
        if record is None:
            return set()
        if self._is_expired(record):
            logger.info("Rejected orders from %s are older than %s days, clearing", record.date, self._ttl_days)
            await self.clear()
            return set()
        return set(record.order_ids)

    async def is_rejected(self, order_id: str) -> bool:
        return str(order_id) in await self.list_active()

    async def clear(self) -> None:
        try:
            await self._storage.delete(self._key)
        except PersistenceFailure as e:
            logger.error("Failed to clear rejected orders: %s", e)
