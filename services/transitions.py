"""
Машина переходов статусов заказа.

Прогресс доставки идёт строго вперёд по таблице STATUS_PROGRESSION.
Единственная развилка: REACHED (57): по умолчанию следующим считается
DELIVERED (58), но экран обязан предложить и CUSTOMER_NOT_SHOWED_UP (263).
Принятие свободного заказа (5 → 52) это отдельная операция "claim",
а не вычисление следующего статуса.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple

from services.errors import TransitionRejected
from services.statuses import CLAIM_THRESHOLD, OrderStatusCode as S

# Таблица покрывает ВСЕ коды: None означает терминальный для прогресса вперёд.
# Новый код без записи здесь уронит импорт модуля.
STATUS_PROGRESSION: Mapping[S, Optional[S]] = MappingProxyType({
    S.PENDING: None,
    S.ACCEPTED: None,
    S.CANCELLED: None,
    S.ASSIGNED: S.STARTED,
    S.STARTED: S.AT_THE_RESTAURANT,
    S.AT_THE_RESTAURANT: S.PICKED,
    S.PICKED: S.OUT_FOR_DELIVERY,
    S.MISSING_ITEMS: None,
    S.OUT_FOR_DELIVERY: S.REACHED,
    S.REACHED: S.DELIVERED,
    S.DELIVERED: None,
    S.NOT_PICKED: None,
    S.CUSTOMER_NOT_SHOWED_UP: None,
})

if set(STATUS_PROGRESSION) != set(S):
    raise RuntimeError(
        f"STATUS_PROGRESSION is missing codes: {sorted(set(S) - set(STATUS_PROGRESSION))}"
    )

# Все исходы для REACHED, первый является вариантом по умолчанию
REACHED_OUTCOMES: Tuple[S, ...] = (S.DELIVERED, S.CUSTOMER_NOT_SHOWED_UP)

# Из каких статусов курьер может отказаться от заказа
REJECTABLE_STATUSES = frozenset({S.ACCEPTED, S.ASSIGNED})


def _as_code(code: int) -> Optional[S]:
    if isinstance(code, bool):
        return None
    try:
        return S(code)
    except (ValueError, TypeError):
        return None


def next_status(code: int) -> Optional[S]:
    """Следующий статус по умолчанию или None для терминальных/неизвестных кодов."""
    current = _as_code(code)
    if current is None:
        return None
    return STATUS_PROGRESSION[current]


def status_options(code: int) -> Tuple[S, ...]:
    """Все статусы, которые экран должен предложить курьеру из текущего."""
    if _as_code(code) == S.REACHED:
        return REACHED_OUTCOMES
    nxt = next_status(code)
    return (nxt,) if nxt is not None else ()


def can_display_status_control(code: int) -> bool:
    """Управление статусом доступно только для закреплённых заказов (код >= 52)."""
    return code >= CLAIM_THRESHOLD


def can_accept(code: int) -> bool:
    return code == S.ACCEPTED


def can_reject(code: int) -> bool:
    return _as_code(code) in REJECTABLE_STATUSES


def validate_transition(current: int, requested: int) -> S:
    """
    Проверить, что переход current → requested разрешён с экрана.

    Returns:
        Целевой статус как OrderStatusCode

    Raises:
        TransitionRejected: переход запрещён бизнес-правилами
    """
    target = _as_code(requested)
    if target is None:
        raise TransitionRejected(f"Неизвестный статус: {requested}")

    if can_accept(current):
        if target != S.ASSIGNED:
            raise TransitionRejected("Свободный заказ можно только принять или отклонить.")
        return target

    if not can_display_status_control(current):
        raise TransitionRejected("Заказ ещё не закреплён за вами, смена статуса недоступна.")

    allowed = status_options(current)
    if target not in allowed:
        if not allowed:
            raise TransitionRejected("Заказ уже в конечном статусе.")
        raise TransitionRejected("Такой переход статуса недопустим.")
    return target


def ensure_can_go_offline(status_ids: Iterable[int]) -> None:
    """
    Курьер не может уйти с линии, пока за ним есть принятый заказ.

    Raises:
        TransitionRejected: есть заказ в статусе ASSIGNED
    """
    if any(code == S.ASSIGNED for code in status_ids):
        raise TransitionRejected(
            "Нельзя уйти с линии: сначала завершите доставку принятых заказов."
        )
