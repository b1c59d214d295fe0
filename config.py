"""
Конфигурация приложения с валидацией через Pydantic.
"""
from typing import Optional
from pydantic import Field, field_validator, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Config(BaseSettings):
    """Конфигурация приложения с валидацией."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Bot
    BOT_TOKEN: str = Field(default="", description="Токен Telegram бота")

    @field_validator("BOT_TOKEN")
    @classmethod
    def validate_bot_token(cls, v: str) -> str:
        """Валидация токена бота."""
        if not v:
            raise ValueError("BOT_TOKEN обязателен для работы бота")
        return v

    # Backend (сервер заказов ресторанов)
    BACKEND_API_URL: str = Field(
        default="http://13.200.251.201:8080/AIOPOSRestaurantAdminAPIs",
        description="Базовый URL API заказов"
    )
    BACKEND_TIMEOUT: float = Field(default=10.0, description="Таймаут запросов к API в секундах")
    STAFF_VALIDATE_PATH: str = Field(default="/deliverystaff/validate/", description="Проверка номера курьера")
    AVAILABLE_ORDERS_PATH: str = Field(default="/ordermaster/getordersbyordermasterId", description="Свободные заказы")
    ASSIGNED_ORDERS_PATH: str = Field(default="/ordermaster/getallorders/", description="Заказы курьера")
    UPDATE_STATUS_PATH: str = Field(default="/ordermaster/updateorderstatus", description="Обновление статуса")
    WALLET_PATH: str = Field(default="/deliverystaff/wallet/", description="Кошелёк курьера")

    @field_validator("BACKEND_API_URL")
    @classmethod
    def validate_backend_url(cls, v: str) -> str:
        """URL без завершающего слэша: пути endpoint'ов начинаются со слэша."""
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"BACKEND_API_URL должен начинаться с http:// или https://: {v}")
        return v

    # Параметры запроса свободных заказов
    AVAILABLE_STATUS_ID: int = Field(default=5, description="statusId свободных заказов")
    ORDER_TYPE_ID: int = Field(default=9, description="Тип заказа: доставка")
    BRANCH_ID: int = Field(default=-1, description="Филиал (-1 = все)")

    # Orders
    ORDERS_REFRESH_INTERVAL: float = Field(default=300.0, description="Период автообновления списка заказов в секундах")
    DEFAULT_DELIVERY_FEE: float = Field(default=5.0, description="Стоимость доставки, если бэкенд её не прислал")
    REJECTION_TTL_DAYS: int = Field(default=3, description="Сколько дней скрывать отклонённые заказы")
    CURRENCY_SYMBOL: str = Field(default="₹", description="Символ валюты")

    @field_validator("ORDERS_REFRESH_INTERVAL")
    @classmethod
    def validate_refresh_interval(cls, v: float) -> float:
        """Слишком частый опрос бьёт по бэкенду."""
        if v < 10:
            raise ValueError(f"ORDERS_REFRESH_INTERVAL слишком мал: {v}. Минимум 10 секунд")
        return v

    # Redis
    REDIS_HOST: str = Field(default="localhost", description="Хост Redis")
    REDIS_PORT: int = Field(default=6379, description="Порт Redis")
    REDIS_DB: int = Field(default=0, description="Номер БД Redis")
    REDIS_PASSWORD: Optional[str] = Field(default=None, description="Пароль Redis")
    REDIS_KEY_PREFIX: str = Field(default="courier:", description="Префикс ключей в Redis")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Уровень логирования")
    LOG_FILE: str = Field(default="bot.log", description="Файл лога")
    DEBUG: bool = Field(default=False, description="Режим отладки")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Валидация уровня логирования."""
        v = v.upper()
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if v not in valid_levels:
            raise ValueError(f"Неподдерживаемый уровень логирования: {v}. Допустимые: {valid_levels}")
        return v

    @computed_field
    @property
    def REDIS_URL(self) -> str:
        """URL подключения к Redis (для логов)."""
        auth = ":***@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


# Создаем экземпляр конфигурации с валидацией
try:
    config = Config()
except Exception as e:
    import sys
    print(f"❌ Ошибка загрузки конфигурации: {e}", file=sys.stderr)
    sys.exit(1)
