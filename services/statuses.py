"""
Реестр статусов заказа: числовой код бэкенда → семантическая стадия.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from services.errors import UnknownStatus


class OrderStatusCode(enum.IntEnum):
    PENDING = 4
    ACCEPTED = 5
    CANCELLED = 8
    ASSIGNED = 52
    STARTED = 53
    PICKED = 54
    MISSING_ITEMS = 55
    OUT_FOR_DELIVERY = 56
    REACHED = 57
    DELIVERED = 58
    NOT_PICKED = 59
    AT_THE_RESTAURANT = 65
    CUSTOMER_NOT_SHOWED_UP = 263


# Порог "заказ закреплён за курьером": с этого кода доступна смена статуса
CLAIM_THRESHOLD = OrderStatusCode.ASSIGNED


@dataclass(frozen=True, slots=True)
class StatusInfo:
    code: OrderStatusCode
    name: str
    description: str


STATUS_REGISTRY: Mapping[OrderStatusCode, StatusInfo] = MappingProxyType({
    info.code: info for info in (
        StatusInfo(OrderStatusCode.PENDING, "pending", "order needs to be confirmed"),
        StatusInfo(OrderStatusCode.ACCEPTED, "accepted", "order accepted by restaurant"),
        StatusInfo(OrderStatusCode.CANCELLED, "cancelled", "order cancelled"),
        StatusInfo(OrderStatusCode.ASSIGNED, "assigned", "delivery staff assigned"),
        StatusInfo(OrderStatusCode.STARTED, "started", "reaching restaurant"),
        StatusInfo(OrderStatusCode.PICKED, "picked", "order picked by delivery person"),
        StatusInfo(OrderStatusCode.MISSING_ITEMS, "missing_items", "some items are missing"),
        StatusInfo(OrderStatusCode.OUT_FOR_DELIVERY, "out_for_delivery", "order is out for delivery"),
        StatusInfo(OrderStatusCode.REACHED, "reached", "reached the location"),
        StatusInfo(OrderStatusCode.DELIVERED, "delivered", "order is delivered"),
        StatusInfo(OrderStatusCode.NOT_PICKED, "not_picked", "customer has not picked the order"),
        StatusInfo(OrderStatusCode.AT_THE_RESTAURANT, "at_the_restaurant", "reached the restaurant"),
        StatusInfo(OrderStatusCode.CUSTOMER_NOT_SHOWED_UP, "customer_not_showed_up",
                   "customer did not show up for pickup"),
    )
})

if set(STATUS_REGISTRY) != set(OrderStatusCode):
    raise RuntimeError(
        f"STATUS_REGISTRY is missing codes: {sorted(set(OrderStatusCode) - set(STATUS_REGISTRY))}"
    )


def lookup(code: int) -> StatusInfo:
    """
    Получить описание статуса по коду.

    Raises:
        UnknownStatus: код не зарегистрирован (ошибка целостности данных)
    """
    if isinstance(code, bool):
        raise UnknownStatus(code)
    try:
        return STATUS_REGISTRY[OrderStatusCode(code)]
    except (ValueError, TypeError):
        raise UnknownStatus(code) from None


def is_known(code: int) -> bool:
    try:
        lookup(code)
    except UnknownStatus:
        return False
    return True
