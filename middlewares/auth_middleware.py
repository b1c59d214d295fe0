"""
Проверка входа курьера для роутеров, которые работают с заказами.
"""
import logging
from typing import Callable, Dict, Any, Awaitable

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject, Message, CallbackQuery

logger = logging.getLogger(__name__)


class CourierRequiredMiddleware(BaseMiddleware):
    """
    Пропускает событие только вошедшему курьеру.
    Должна стоять после CourierContextMiddleware (нужен data['courier']).
    """

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        if data.get("courier") is not None:
            return await handler(event, data)

        user = data.get("event_from_user")
        logger.warning("User %s is not logged in as courier", user.id if user else None)
        text = "🔒 Сначала войдите: отправьте /start"
        if isinstance(event, CallbackQuery):
            await event.answer(text, show_alert=True)
        elif isinstance(event, Message):
            await event.answer(text)
        return
