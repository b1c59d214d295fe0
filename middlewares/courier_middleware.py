"""
Middleware для dependency injection контекста курьера.
"""
import logging
from typing import Callable, Dict, Any, Awaitable

from aiogram import BaseMiddleware
from aiogram.exceptions import TelegramBadRequest
from aiogram.types import TelegramObject, Message, CallbackQuery

from services.courier_context import CourierRegistry
from services.errors import NetworkFailure, PersistenceFailure

logger = logging.getLogger(__name__)


class CourierContextMiddleware(BaseMiddleware):
    """
    Кладёт в data['courier'] контекст вошедшего курьера (или None).
    Необработанные сбои бэкенда и хранилища превращает в сообщение курьеру.
    """

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        registry: CourierRegistry = data["registry"]
        user = data.get("event_from_user")
        data["courier"] = await registry.get(user.id) if user else None

        try:
            return await handler(event, data)
        except (NetworkFailure, PersistenceFailure) as e:
            logger.error("Backend/storage failure: %r", e, exc_info=True)
            if isinstance(e, NetworkFailure):
                error_message = "❌ Сервер заказов недоступен. Попробуйте позже."
            else:
                error_message = "❌ Не удалось сохранить данные. Попробуйте позже."

            try:
                if isinstance(event, CallbackQuery):
                    await event.answer(error_message, show_alert=True)
                elif isinstance(event, Message):
                    await event.answer(error_message)
            except TelegramBadRequest as answer_error:
                logger.warning("Could not report failure to user: %s", answer_error)
            return
