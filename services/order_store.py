"""
Хранилище заказов курьера.

Держит две коллекции: свободные заказы ресторана (пул, статус 5) и заказы,
назначенные курьеру. Экраны получают только глубокие копии (snapshot),
изменять заказы может только само хранилище.

Смена статуса: проверка правил → запрос к бэкенду → изменение заказа
в хранилище → уведомление на шине. Если бэкенд ответил ошибкой, хранилище
не меняется.
"""
from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from services.backend_api import BackendClient
from services.errors import NetworkFailure, OrderNotFound, TransitionRejected
from services.event_bus import ORDER_UPDATED, OrderUpdateBus
from services.order_mapper import DEFAULT_DELIVERY_FEE, Order, map_api_orders
from services.rejection_ledger import RejectionLedger
from services.statuses import OrderStatusCode as S
from services.transitions import can_reject, next_status, validate_transition

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PartitionedOrders:
    current: List[Order] = field(default_factory=list)
    past: List[Order] = field(default_factory=list)


@dataclass(slots=True)
class FetchResult:
    """Результат загрузки. None в коллекции = эта сторона не загрузилась."""
    available: Optional[List[Order]] = None
    assigned: Optional[List[Order]] = None
    errors: List[Exception] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.available is None and self.assigned is None


@dataclass(slots=True)
class OrdersSnapshot:
    available: List[Order] = field(default_factory=list)
    current: List[Order] = field(default_factory=list)
    past: List[Order] = field(default_factory=list)
    loaded: bool = False
    last_updated: Optional[datetime] = None


def partition(orders: List[Order]) -> PartitionedOrders:
    """
    Разделить заказы на текущие и прошлые.

    Прошлым считается только DELIVERED. Прочие конечные статусы
    (отмена, клиент не пришёл) остаются в текущих.
    """
    result = PartitionedOrders()
    for order in orders:
        if order.status_id == S.DELIVERED:
            result.past.append(order)
        else:
            result.current.append(order)
    return result


class OrderStore:
    """Заказы одного курьера."""

    def __init__(
        self,
        backend: BackendClient,
        bus: OrderUpdateBus,
        ledger: RejectionLedger,
        *,
        staff_id: int,
        res_id: int,
        contact_no: str,
        default_delivery_fee: float = DEFAULT_DELIVERY_FEE,
    ):
        self._backend = backend
        self._bus = bus
        self._ledger = ledger
        self.staff_id = staff_id
        self.res_id = res_id
        self.contact_no = contact_no
        self._default_fee = default_delivery_fee

        self._available: Dict[str, Order] = {}
        self._assigned: Dict[str, Order] = {}
        self._lock = asyncio.Lock()
        self._loaded = False
        self.last_updated: Optional[datetime] = None

    @property
    def loaded(self) -> bool:
        return self._loaded

    # --- Загрузка ---

    async def fetch_available(self) -> List[Order]:
        raws = await self._backend.get_available_orders(self.res_id)
        return map_api_orders(raws, self._default_fee)

    async def fetch_assigned(self) -> List[Order]:
        raws = await self._backend.get_assigned_orders(self.staff_id)
        return map_api_orders(raws, self._default_fee)

    async def fetch_all(self) -> FetchResult:
        """
        Загрузить обе коллекции параллельно.

        Raises:
            NetworkFailure: не загрузилась ни одна сторона
        """
        available, assigned = await asyncio.gather(
            self.fetch_available(), self.fetch_assigned(), return_exceptions=True
        )
        result = FetchResult()
        for name, value in (("available", available), ("assigned", assigned)):
            if isinstance(value, NetworkFailure):
                logger.warning("Fetching %s orders failed for staff=%s: %s", name, self.staff_id, value)
                result.errors.append(value)
            elif isinstance(value, BaseException):
                raise value
            else:
                setattr(result, name, value)

        if result.failed:
            raise NetworkFailure(
                "Не удалось загрузить заказы: " + "; ".join(str(e) for e in result.errors)
            )
        return result

    async def apply(self, result: FetchResult) -> None:
        """Установить загруженные данные; незагрузившаяся сторона остаётся прежней."""
        async with self._lock:
            if result.available is not None:
                self._available = {o.id: o for o in result.available}
            if result.assigned is not None:
                self._assigned = {o.id: o for o in result.assigned}
                # Заказ, уже закреплённый за курьером, не может висеть в пуле
                for order_id in self._assigned:
                    self._available.pop(order_id, None)
            self._loaded = True
            self.last_updated = datetime.now()
        logger.debug(
            "Store updated for staff=%s: available=%s assigned=%s",
            self.staff_id, len(self._available), len(self._assigned),
        )

    async def refresh(self) -> bool:
        """
        Перезагрузить заказы.

        Returns:
            False, если загрузка не удалась и остались прежние данные

        Raises:
            NetworkFailure: данных ещё ни разу не было
        """
        try:
            result = await self.fetch_all()
        except NetworkFailure:
            if not self._loaded:
                raise
            logger.warning("Refresh failed for staff=%s, keeping stale orders", self.staff_id)
            return False
        await self.apply(result)
        return True

    async def clear_available(self) -> None:
        """Курьер ушёл с линии: пул свободных заказов больше не показываем."""
        async with self._lock:
            self._available = {}

    # --- Чтение ---

    async def snapshot(self) -> OrdersSnapshot:
        """Копии заказов для экранов, без отклонённых курьером."""
        rejected = await self._ledger.list_active()
        async with self._lock:
            available = [copy.deepcopy(o) for o in self._available.values() if o.id not in rejected]
            assigned = [copy.deepcopy(o) for o in self._assigned.values() if o.id not in rejected]
            loaded, last_updated = self._loaded, self.last_updated
        parts = partition(assigned)
        return OrdersSnapshot(
            available=available,
            current=parts.current,
            past=parts.past,
            loaded=loaded,
            last_updated=last_updated,
        )

    async def visible_status_ids(self) -> List[int]:
        """Статусы заказов, которые курьер видит (без отклонённых)."""
        rejected = await self._ledger.list_active()
        return [
            o.status_id
            for o in (*self._available.values(), *self._assigned.values())
            if o.id not in rejected
        ]

    def assigned_orders(self) -> List[Order]:
        return [copy.deepcopy(o) for o in self._assigned.values()]

    def get_order(self, order_id: str) -> Optional[Order]:
        order = self._find_local(str(order_id))
        return copy.deepcopy(order) if order is not None else None

    def _find_local(self, order_id: str) -> Optional[Order]:
        return self._assigned.get(order_id) or self._available.get(order_id)

    async def _find_remote(self, order_id: str) -> Tuple[Optional[Order], bool]:
        """
        Поискать заказ сначала в свободных, затем в назначенных.
        Ошибка одного запроса не мешает второму.

        Returns:
            (заказ или None, назначен ли он курьеру)
        """
        errors: List[NetworkFailure] = []
        for assigned, fetch in ((False, self.fetch_available), (True, self.fetch_assigned)):
            try:
                orders = await fetch()
            except NetworkFailure as e:
                logger.warning("Lookup of order %s: %s", order_id, e)
                errors.append(e)
                continue
            for order in orders:
                if order.id == order_id:
                    return order, assigned
        if len(errors) == 2:
            raise errors[-1]
        return None, False

    async def locate_order(self, order_id: str) -> Order:
        """
        Найти заказ: в хранилище, иначе на бэкенде.

        Raises:
            OrderNotFound: заказа нет ни в одном источнике
            NetworkFailure: оба запроса к бэкенду не удались
        """
        order_id = str(order_id)
        order = self._find_local(order_id)
        if order is not None:
            return copy.deepcopy(order)

        found, assigned = await self._find_remote(order_id)
        if found is None:
            raise OrderNotFound(order_id)
        async with self._lock:
            target = self._assigned if assigned else self._available
            target.setdefault(order_id, found)
            return copy.deepcopy(target[order_id])

    # --- Изменение ---

    async def apply_transition(self, order_id: str, requested: int) -> Order:
        """
        Перевести заказ в статус requested.

        Raises:
            TransitionRejected: переход запрещён правилами
            OrderNotFound: заказа нет
            NetworkFailure: бэкенд не принял изменение (хранилище не изменено)
        """
        order_id = str(order_id)
        if self._find_local(order_id) is None:
            # Кнопка из старого сообщения: хранилище ещё не знает заказ
            await self.locate_order(order_id)
        async with self._lock:
            order = self._find_local(order_id)
            if order is None:
                raise OrderNotFound(order_id)

            target = validate_transition(order.status_id, requested)
            await self._backend.update_order_status(
                int(order_id), int(target), self.staff_id, self.contact_no
            )

            previous = order.status_id
            order.apply_status(target)
            if target == S.DELIVERED:
                order.delivered_at = datetime.now().isoformat(timespec="seconds")
            if order_id in self._available and target >= S.ASSIGNED:
                self._assigned[order_id] = self._available.pop(order_id)
            result = copy.deepcopy(order)

        logger.info("Order %s: %s -> %s (staff=%s)", order_id, previous, int(target), self.staff_id)
        await self._bus.publish(ORDER_UPDATED)
        return result

    async def accept(self, order_id: str) -> Order:
        """Забрать свободный заказ себе (5 → 52)."""
        return await self.apply_transition(order_id, S.ASSIGNED)

    async def advance(self, order_id: str) -> Order:
        """Перевести заказ в следующий статус по умолчанию."""
        order = await self.locate_order(order_id)
        nxt = next_status(order.status_id)
        if nxt is None:
            raise TransitionRejected("Для этого заказа нет следующего статуса.")
        return await self.apply_transition(order_id, nxt)

    async def reject(self, order_id: str) -> None:
        """
        Отказаться от заказа: он пропадает из списков курьера до конца срока хранения.

        Raises:
            TransitionRejected: заказ в статусе, из которого отказ невозможен
        """
        order_id = str(order_id)
        try:
            order = await self.locate_order(order_id)
        except OrderNotFound:
            order = None
        if order is not None and not can_reject(order.status_id):
            raise TransitionRejected("От этого заказа уже нельзя отказаться.")
        await self._ledger.reject(order_id)
        await self._bus.publish(ORDER_UPDATED)
