"""
Исключения доменного слоя курьерского бота.

Сервисы бросают их при нарушении правил или сбое внешних систем,
handlers ловят и превращают в сообщения курьеру.
"""
from __future__ import annotations

from typing import Optional


class CourierError(Exception):
    """Базовое исключение бота."""


class OrderMappingError(CourierError):
    """Запись заказа с бэкенда не удалось преобразовать в Order."""


class UnknownStatus(OrderMappingError):
    """Код статуса отсутствует в реестре статусов."""

    def __init__(self, code: object):
        self.code = code
        super().__init__(f"Unknown order status code: {code!r}")


class TransitionRejected(CourierError):
    """Нарушено бизнес-правило смены статуса. Текст показывается курьеру."""


class NetworkFailure(CourierError):
    """Ошибка транспорта или HTTP при обращении к бэкенду."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class PersistenceFailure(CourierError):
    """Ошибка чтения/записи постоянного хранилища."""


class AuthenticationFailed(CourierError):
    """Номер не зарегистрирован или неверный OTP."""


class OrderNotFound(CourierError):
    """Заказ не найден ни в свободных, ни в назначенных."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Заказ #{order_id} не найден. Возможно, его уже забрал другой курьер.")
