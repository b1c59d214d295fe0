"""
Middleware для логирования входящих событий и исключений.

Цели:
- видеть каждый апдейт (message/callback) и кто его отправил
- получать полный traceback и контекст, если упало в любом месте обработчика
- не писать в лог коды подтверждения и номера телефонов
"""

import logging
import time
from typing import Callable, Dict, Any, Awaitable, Optional, Tuple

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject, Message, CallbackQuery

from states.courier_states import AuthState

logger = logging.getLogger(__name__)

MASKED = "***"


def _truncate(text: Optional[str], limit: int = 200) -> Optional[str]:
    if text is None:
        return None
    text = text.replace("\n", "\\n")
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def _mask_phone(phone: str) -> str:
    return f"{MASKED}{phone[-4:]}" if len(phone) > 4 else MASKED


def describe_message(message: Message, raw_state: Optional[str] = None) -> Optional[str]:
    """Краткое содержимое сообщения для лога, без секретов."""
    if message.location:
        return f"<location {message.location.latitude:.4f},{message.location.longitude:.4f}>"
    if message.contact:
        return f"<contact {_mask_phone(message.contact.phone_number or '')}>"
    text = message.text or message.caption
    if text and raw_state in (AuthState.waiting_otp.state, AuthState.waiting_phone.state):
        return MASKED if raw_state == AuthState.waiting_otp.state else _mask_phone(text.strip())
    return _truncate(text)


def event_origin(event: TelegramObject, raw_state: Optional[str] = None) -> Tuple[Optional[int], Optional[int], Optional[str]]:
    """(user_id, chat_id, payload) для строки лога."""
    if isinstance(event, Message):
        return (
            event.from_user.id if event.from_user else None,
            event.chat.id if event.chat else None,
            describe_message(event, raw_state),
        )
    if isinstance(event, CallbackQuery):
        chat_id = event.message.chat.id if event.message and event.message.chat else None
        return event.from_user.id if event.from_user else None, chat_id, _truncate(event.data)
    return None, None, None


class LoggingMiddleware(BaseMiddleware):
    """Логирует старт/финиш обработки события + исключения с контекстом."""

    def __init__(self, log_success: bool = True):
        self.log_success = log_success

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        started = time.monotonic()

        event_type = type(event).__name__
        user_id, chat_id, payload = event_origin(event, data.get("raw_state"))

        # Корреляционный ID на время обработки одного события
        trace_id = f"{int(time.time() * 1000)}:{user_id or 'na'}"
        data["trace_id"] = trace_id

        logger.info(
            "IN  trace=%s type=%s user=%s chat=%s payload=%s",
            trace_id, event_type, user_id, chat_id, payload,
        )

        try:
            result = await handler(event, data)
        except Exception as e:
            ms = (time.monotonic() - started) * 1000
            logger.error(
                "ERR trace=%s type=%s user=%s chat=%s time_ms=%.1f err=%s",
                trace_id, event_type, user_id, chat_id, ms, repr(e),
                exc_info=True,
            )
            raise

        if self.log_success:
            ms = (time.monotonic() - started) * 1000
            logger.info(
                "OUT trace=%s type=%s user=%s chat=%s time_ms=%.1f",
                trace_id, event_type, user_id, chat_id, ms,
            )
        return result
