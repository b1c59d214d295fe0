import pytest
from aiogram.exceptions import TelegramBadRequest, TelegramNetworkError

from services import telegram_utils
from services.telegram_utils import EditOutcome, edit_screen_message, escape_markdown


class ScriptedBot:
    """Отдаёт заранее заданные ошибки, потом успешно правит сообщение."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = []

    async def edit_message_text(self, **kwargs):
        self.calls.append(kwargs)
        if self.errors:
            raise self.errors.pop(0)
        return True


def _bad_request(text):
    return TelegramBadRequest(method=None, message=f"Bad Request: {text}")


def test_escape_markdown():
    assert escape_markdown("Pizza_Hut *best*") == "Pizza\\_Hut \\*best\\*"
    assert escape_markdown(None) == ""
    assert escape_markdown("") == ""


@pytest.mark.asyncio
async def test_edit_success():
    bot = ScriptedBot()
    assert await edit_screen_message(bot, 1, 2, "hi") is EditOutcome.EDITED
    assert bot.calls[0]["parse_mode"] == "Markdown"


@pytest.mark.asyncio
async def test_not_modified_is_unchanged():
    bot = ScriptedBot(_bad_request("message is not modified"))
    assert await edit_screen_message(bot, 1, 2, "hi") is EditOutcome.UNCHANGED


@pytest.mark.asyncio
async def test_missing_message_is_gone():
    bot = ScriptedBot(_bad_request("message to edit not found"))
    assert await edit_screen_message(bot, 1, 2, "hi") is EditOutcome.GONE


@pytest.mark.asyncio
async def test_markup_error_falls_back_to_plain_text():
    bot = ScriptedBot(_bad_request("can't parse entities: unclosed tag"))
    assert await edit_screen_message(bot, 1, 2, "*broken") is EditOutcome.EDITED
    assert bot.calls[-1]["parse_mode"] is None


@pytest.mark.asyncio
async def test_network_errors_are_retried(monkeypatch):
    monkeypatch.setattr(telegram_utils, "RETRY_DELAY", 0)
    bot = ScriptedBot(TelegramNetworkError(method=None, message="timeout"))
    assert await edit_screen_message(bot, 1, 2, "hi") is EditOutcome.EDITED
    assert len(bot.calls) == 2


@pytest.mark.asyncio
async def test_network_errors_give_up(monkeypatch):
    monkeypatch.setattr(telegram_utils, "RETRY_DELAY", 0)
    errors = [TelegramNetworkError(method=None, message="timeout") for _ in range(telegram_utils.MAX_EDIT_RETRIES)]
    bot = ScriptedBot(*errors)
    with pytest.raises(TelegramNetworkError):
        await edit_screen_message(bot, 1, 2, "hi")


@pytest.mark.asyncio
async def test_other_bad_request_propagates():
    bot = ScriptedBot(_bad_request("chat_id is empty"))
    with pytest.raises(TelegramBadRequest):
        await edit_screen_message(bot, 1, 2, "hi")
