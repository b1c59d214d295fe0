"""
Шина уведомлений об обновлении заказов.

Сигнал без данных: "статус какого-то заказа изменился, перечитайте".
Экран подписывается при показе и отписывается при закрытии.
Экземпляр создаётся в main.py и передаётся в handlers через
workflow data диспетчера.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Dict, List, Union

logger = logging.getLogger(__name__)

ORDER_UPDATED = "orderUpdated"

Subscriber = Callable[[], Union[Awaitable[None], None]]


class OrderUpdateBus:
    """In-process pub/sub по темам."""

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Subscriber]] = {}

    def subscribe(self, handler: Subscriber, topic: str = ORDER_UPDATED) -> Callable[[], None]:
        """Подписать обработчик. Возвращает функцию отписки."""
        handlers = self._subscribers.setdefault(topic, [])
        if handler not in handlers:
            handlers.append(handler)
        return lambda: self.unsubscribe(handler, topic)

    def unsubscribe(self, handler: Subscriber, topic: str = ORDER_UPDATED) -> None:
        handlers = self._subscribers.get(topic)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def subscriber_count(self, topic: str = ORDER_UPDATED) -> int:
        return len(self._subscribers.get(topic, ()))

    async def publish(self, topic: str = ORDER_UPDATED) -> None:
        """
        Вызвать всех подписчиков, зарегистрированных на момент вызова.
        Ошибка одного подписчика логируется и не мешает остальным.
        """
        handlers = list(self._subscribers.get(topic, ()))
        if not handlers:
            return
        logger.debug("Publishing %s to %s subscriber(s)", topic, len(handlers))
        results = await asyncio.gather(
            *(self._invoke(h) for h in handlers),
            return_exceptions=True,
        )
        for handler, result in zip(handlers, results):
            if isinstance(result, BaseException) and not isinstance(result, asyncio.CancelledError):
                logger.error(
                    "Subscriber %r failed on %s: %r",
                    handler, topic, result,
                    exc_info=(type(result), result, result.__traceback__),
                )

    @staticmethod
    async def _invoke(handler: Subscriber) -> None:
        result = handler()
        if inspect.isawaitable(result):
            await result
