"""
Утилиты для работы с Telegram API: экранирование Markdown и перерисовка сообщения экрана.
"""
import asyncio
import enum
import logging
from typing import Optional

from aiogram import Bot
from aiogram.exceptions import TelegramBadRequest, TelegramNetworkError, TelegramRetryAfter

logger = logging.getLogger(__name__)

MAX_EDIT_RETRIES = 3
RETRY_DELAY = 1.0

# Фрагменты текста TelegramBadRequest
_UNCHANGED_MARKERS = ("message is not modified",)
_GONE_MARKERS = ("message to edit not found", "message can't be edited", "chat not found")
_PARSE_MARKERS = ("can't parse entities", "can't find end of the entity")


class EditOutcome(enum.Enum):
    EDITED = "edited"
    UNCHANGED = "unchanged"
    # Сообщение удалено или больше не редактируется: экран пора закрыть
    GONE = "gone"


def escape_markdown(s: str) -> str:
    """
    Экранирует спецсимволы Markdown в пользовательском тексте.
    Использовать для всех полей с бэкенда (имена, адреса, позиции заказа).
    """
    if not s or not isinstance(s, str):
        return str(s) if s is not None else ""
    s = s.replace("\\", "\\\\")
    for ch in "_*[]()`":
        s = s.replace(ch, f"\\{ch}")
    return s


def _matches(error: TelegramBadRequest, markers) -> bool:
    text = str(error).lower()
    return any(m in text for m in markers)


async def edit_screen_message(
    bot: Bot,
    chat_id: int,
    message_id: int,
    text: str,
    *,
    reply_markup=None,
    parse_mode: Optional[str] = "Markdown",
) -> EditOutcome:
    """
    Перерисовать сообщение экрана на месте.

    Flood control и сетевые сбои повторяются до MAX_EDIT_RETRIES раз, потом
    исключение уходит наверх. Ошибка разметки повторяется один раз без
    parse_mode. Прочие TelegramBadRequest пробрасываются.
    """
    attempt = 0
    while True:
        try:
            await bot.edit_message_text(
                text=text,
                chat_id=chat_id,
                message_id=message_id,
                reply_markup=reply_markup,
                parse_mode=parse_mode,
            )
            return EditOutcome.EDITED
        except TelegramRetryAfter as e:
            attempt += 1
            if attempt >= MAX_EDIT_RETRIES:
                raise
            logger.warning("Screen %s/%s: flood control, wait %ss", chat_id, message_id, e.retry_after)
            await asyncio.sleep(e.retry_after)
        except TelegramNetworkError as e:
            attempt += 1
            if attempt >= MAX_EDIT_RETRIES:
                logger.error("Screen %s/%s: edit failed after %s attempts: %s", chat_id, message_id, attempt, e)
                raise
            logger.warning("Screen %s/%s: %s, retry %s/%s", chat_id, message_id, e, attempt, MAX_EDIT_RETRIES)
            await asyncio.sleep(RETRY_DELAY * attempt)
        except TelegramBadRequest as e:
            if _matches(e, _UNCHANGED_MARKERS):
                return EditOutcome.UNCHANGED
            if _matches(e, _GONE_MARKERS):
                logger.info("Screen %s/%s is gone: %s", chat_id, message_id, e)
                return EditOutcome.GONE
            if parse_mode and _matches(e, _PARSE_MARKERS):
                logger.warning("Screen %s/%s: markup rejected, sending plain text: %s", chat_id, message_id, e)
                parse_mode = None
                continue
            raise
