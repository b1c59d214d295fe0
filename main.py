import asyncio
import logging
import sys
import os
from pathlib import Path
from logging.handlers import RotatingFileHandler
from aiogram import Bot, Dispatcher
from aiogram.types import ErrorEvent
from aiogram.exceptions import TelegramBadRequest, TelegramNetworkError, TelegramServerError, TelegramRetryAfter
from config import config
from middlewares.courier_middleware import CourierContextMiddleware
from middlewares.logging_middleware import LoggingMiddleware

# Configure logging with rotating file handler
log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
log_level = logging.DEBUG if config.DEBUG else getattr(logging, config.LOG_LEVEL, logging.INFO)
logging.basicConfig(
    level=log_level,
    format=log_format,
    handlers=[
        logging.StreamHandler(sys.stdout),
        RotatingFileHandler(
            config.LOG_FILE,
            maxBytes=10*1024*1024,  # 10 MB
            backupCount=5,
            encoding='utf-8'
        )
    ]
)

logger = logging.getLogger(__name__)


_lock_handle = None


def acquire_single_instance_lock() -> None:
    """
    Локальная защита от запуска двух экземпляров бота на одной машине.
    TelegramConflictError чаще всего возникает именно из-за этого.
    """
    global _lock_handle
    lock_path = Path(__file__).resolve().parent / ".bot.lock"
    f = open(lock_path, "a+", encoding="utf-8")
    try:
        if os.name == "nt":
            import msvcrt  # type: ignore
            msvcrt.locking(f.fileno(), msvcrt.LK_NBLCK, 1)
        else:
            import fcntl  # type: ignore
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        f.close()
        raise RuntimeError(
            "Похоже, бот уже запущен на этой машине (занят .bot.lock). "
            "Остановите другие экземпляры, иначе будет TelegramConflictError."
        )
    _lock_handle = f


def setup_asyncio_exception_logging() -> None:
    """
    Ловит исключения из "фоновых" задач asyncio (автообновление экранов и т.п.),
    которые не проходят через aiogram handlers/errors.
    """
    loop = asyncio.get_running_loop()

    def _handler(loop: asyncio.AbstractEventLoop, context: dict):
        msg = context.get("message", "asyncio exception")
        exc = context.get("exception")
        logger.error("ASYNCIO %s", msg, exc_info=exc)

    loop.set_exception_handler(_handler)


async def connect_redis():
    """Клиент Redis, если сервер отвечает, иначе None."""
    import redis.asyncio as redis
    client = redis.Redis(
        host=config.REDIS_HOST,
        port=config.REDIS_PORT,
        db=config.REDIS_DB,
        password=config.REDIS_PASSWORD,
        decode_responses=False
    )
    try:
        await client.ping()
    except (redis.RedisError, OSError) as e:
        logger.warning("Redis %s not available: %s", config.REDIS_URL, e)
        await client.aclose()
        return None
    logger.info("Connected to Redis %s", config.REDIS_URL)
    return client


async def main():
    logger.info("Starting courier bot...")
    setup_asyncio_exception_logging()
    # Локально предотвращаем запуск двух копий
    acquire_single_instance_lock()
    logger.info("BACKEND_API_URL=%s", config.BACKEND_API_URL)

    bot = Bot(token=config.BOT_TOKEN)

    # Используем Redis для FSM storage и данных курьеров, если доступен, иначе память
    redis_client = await connect_redis()
    if redis_client is not None:
        from aiogram.fsm.storage.redis import RedisStorage
        fsm_storage = RedisStorage(redis=redis_client)
        logger.info("Using Redis storage for FSM")
    else:
        from aiogram.fsm.storage.memory import MemoryStorage
        fsm_storage = MemoryStorage()
        logger.info("Using MemoryStorage for FSM")

    from services.backend_api import BackendClient
    from services.courier_context import CourierRegistry
    from services.event_bus import OrderUpdateBus
    from services.screens import ScreenManager
    from services.storage import init_storage

    storage = await init_storage(redis_client)
    backend = BackendClient(config.BACKEND_API_URL, config.BACKEND_TIMEOUT)
    bus = OrderUpdateBus()
    screens = ScreenManager()
    registry = CourierRegistry(backend, storage, bus)

    # Общие зависимости попадают в хендлеры по имени аргумента
    dp = Dispatcher(storage=fsm_storage, bus=bus, registry=registry, screens=screens)

    # Логирование всех входящих событий + исключений с контекстом
    dp.message.middleware(LoggingMiddleware(log_success=True))
    dp.callback_query.middleware(LoggingMiddleware(log_success=True))

    # Контекст курьера (или None) для всех хендлеров
    dp.message.middleware(CourierContextMiddleware())
    dp.callback_query.middleware(CourierContextMiddleware())

    # Глобальный обработчик ошибок aiogram (ловит необработанные исключения в хендлерах)
    @dp.errors()
    async def global_error_handler(event: ErrorEvent):
        exc = event.exception
        # update_id помогает искать конкретный апдейт в логах Telegram
        trace = f"update_id={getattr(event.update, 'update_id', None)}"

        logger.error(
            "UNHANDLED %s err=%s",
            trace,
            repr(exc),
            exc_info=(type(exc), exc, exc.__traceback__),
        )

        # Пытаемся мягко сообщить пользователю, не раскрывая деталей
        try:
            if event.update and event.update.message:
                await event.update.message.answer("⚠️ Произошла внутренняя ошибка. Мы уже записали её в лог.")
            elif event.update and event.update.callback_query:
                await event.update.callback_query.answer("⚠️ Ошибка. Попробуйте ещё раз.", show_alert=True)
        except (TelegramBadRequest, TelegramNetworkError) as e:
            logger.debug("Could not notify user about error: %s", e)

    from handlers import start, auth, courier, fallback

    # Include routers (fallback последним: ловит необработанные обновления)
    dp.include_router(start.router)
    dp.include_router(auth.router)
    dp.include_router(courier.router)
    dp.include_router(fallback.router)

    try:
        try:
            await bot.delete_webhook(drop_pending_updates=True)
            logger.info("Webhook deleted successfully")
        except (TelegramBadRequest, TelegramNetworkError) as webhook_error:
            logger.warning(f"Error deleting webhook (may not exist): {webhook_error}")

        logger.info("Bot started successfully")

        # Автоперезапуск polling при временных сетевых сбоях
        restart_delay = float(os.getenv("POLL_RESTART_SECONDS", "5"))
        while True:
            try:
                await dp.start_polling(
                    bot,
                    allowed_updates=["message", "callback_query"],
                    drop_pending_updates=True
                )
                break  # нормальная остановка polling
            except TelegramRetryAfter as e:
                # Telegram просит подождать (rate limit)
                wait_s = float(getattr(e, "retry_after", restart_delay))
                logger.warning("TelegramRetryAfter: wait %.1fs then continue", wait_s, exc_info=True)
                await asyncio.sleep(wait_s)
            except (TelegramNetworkError, TelegramServerError, asyncio.TimeoutError, OSError):
                logger.error("Polling crashed (network/server). Restart in %.1fs", restart_delay, exc_info=True)
                await asyncio.sleep(restart_delay)
    finally:
        await screens.close_all()
        await backend.close()
        await bot.session.close()
        if redis_client is not None:
            await redis_client.aclose()

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
