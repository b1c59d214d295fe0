"""
Обработчик необработанных обновлений.
Подключается последним, ловит сообщения и callback, которые не попали в другие хендлеры.
"""
import logging
from typing import Optional

from aiogram import Router, types
from aiogram.exceptions import TelegramBadRequest

from services.courier_context import CourierContext

logger = logging.getLogger(__name__)
router = Router()


@router.message()
async def fallback_message(message: types.Message, courier: Optional[CourierContext] = None):
    """Любое сообщение, не обработанное другими хендлерами."""
    if courier is None:
        await message.answer("Отправьте /start, чтобы войти.")
        return
    await message.answer("Пользуйтесь кнопками под сообщениями. /start открывает панель курьера.")


@router.callback_query()
async def fallback_callback(callback: types.CallbackQuery):
    """Любой callback, не обработанный другими хендлерами (устаревшие кнопки и т.п.)."""
    try:
        await callback.answer("Действие устарело. Отправьте /start для обновления меню.")
    except TelegramBadRequest as e:
        logger.debug("Stale callback answer failed: %s", e)
