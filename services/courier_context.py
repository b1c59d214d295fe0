"""
Сессии курьеров и их рабочий контекст.

StaffSession хранится в key-value хранилище по Telegram ID и переживает
перезапуск бота. CourierContext собирает для одного курьера сессию,
журнал отклонений и хранилище заказов; CourierRegistry держит контексты
всех курьеров процесса.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Dict, Optional

from config import config
from services.backend_api import BackendClient, StaffCredentials
from services.earnings import Wallet
from services.errors import AuthenticationFailed, PersistenceFailure
from services.event_bus import OrderUpdateBus
from services.order_store import OrderStore
from services.rejection_ledger import RejectionLedger
from services.storage import KeyValueStorage
from services.transitions import ensure_can_go_offline

logger = logging.getLogger(__name__)

SESSION_KEY = "staff_session"


@dataclass(slots=True)
class StaffSession:
    staff_id: int
    res_id: int
    phone: str
    is_online: bool = False
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> StaffSession:
        return cls(
            staff_id=int(d["staff_id"]),
            res_id=int(d["res_id"]),
            phone=str(d["phone"]),
            is_online=bool(d.get("is_online", False)),
            latitude=d.get("latitude"),
            longitude=d.get("longitude"),
        )

    @property
    def location(self) -> Optional[tuple[float, float]]:
        if self.latitude is None or self.longitude is None:
            return None
        return self.latitude, self.longitude


class SessionStore:
    """Сессии курьеров в key-value хранилище."""

    def __init__(self, storage: KeyValueStorage):
        self._storage = storage

    @staticmethod
    def _key(telegram_id: int) -> str:
        return f"{SESSION_KEY}:{telegram_id}"

    async def load(self, telegram_id: int) -> Optional[StaffSession]:
        try:
            data = await self._storage.get_json(self._key(telegram_id))
        except PersistenceFailure as e:
            logger.error("Failed to load session for %s: %s", telegram_id, e)
            return None
        if not data:
            return None
        try:
            return StaffSession.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Corrupted session for %s, ignoring: %s", telegram_id, e)
            return None

    async def save(self, telegram_id: int, session: StaffSession) -> None:
        await self._storage.set_json(self._key(telegram_id), session.to_dict())

    async def delete(self, telegram_id: int) -> None:
        await self._storage.delete(self._key(telegram_id))


class CourierContext:
    """Всё, что нужно handlers для работы с одним курьером."""

    def __init__(
        self,
        telegram_id: int,
        session: StaffSession,
        sessions: SessionStore,
        store: OrderStore,
        ledger: RejectionLedger,
        backend: BackendClient,
    ):
        self.telegram_id = telegram_id
        self.session = session
        self.store = store
        self.ledger = ledger
        self._sessions = sessions
        self._backend = backend

    @property
    def is_online(self) -> bool:
        return self.session.is_online

    async def set_online(self, value: bool) -> None:
        """
        Выйти на линию или уйти с неё.

        Raises:
            TransitionRejected: за курьером есть принятый, но не начатый заказ
        """
        if value == self.session.is_online:
            return
        if not value:
            ensure_can_go_offline(await self.store.visible_status_ids())
            await self.store.clear_available()
        self.session.is_online = value
        await self._persist()
        logger.info("Courier staff=%s is now %s", self.session.staff_id, "online" if value else "offline")

    async def load_wallet(self) -> Wallet:
        return Wallet.from_dict(await self._backend.get_wallet(self.session.staff_id))

    async def set_location(self, latitude: float, longitude: float) -> None:
        self.session.latitude = latitude
        self.session.longitude = longitude
        await self._persist()

    async def _persist(self) -> None:
        try:
            await self._sessions.save(self.telegram_id, self.session)
        except PersistenceFailure as e:
            # В памяти состояние уже обновлено, потеряется только при перезапуске
            logger.error("Failed to persist session for %s: %s", self.telegram_id, e)


class CourierRegistry:
    """Контексты курьеров процесса и вход/выход."""

    def __init__(self, backend: BackendClient, storage: KeyValueStorage, bus: OrderUpdateBus):
        self.backend = backend
        self.storage = storage
        self.bus = bus
        self.sessions = SessionStore(storage)
        self._contexts: Dict[int, CourierContext] = {}

    def _build(self, telegram_id: int, session: StaffSession) -> CourierContext:
        ledger = RejectionLedger(self.storage, owner=session.staff_id, ttl_days=config.REJECTION_TTL_DAYS)
        store = OrderStore(
            self.backend,
            self.bus,
            ledger,
            staff_id=session.staff_id,
            res_id=session.res_id,
            contact_no=session.phone,
            default_delivery_fee=config.DEFAULT_DELIVERY_FEE,
        )
        ctx = CourierContext(telegram_id, session, self.sessions, store, ledger, self.backend)
        self._contexts[telegram_id] = ctx
        return ctx

    async def get(self, telegram_id: int) -> Optional[CourierContext]:
        """Контекст вошедшего курьера или None."""
        ctx = self._contexts.get(telegram_id)
        if ctx is not None:
            return ctx
        session = await self.sessions.load(telegram_id)
        if session is None:
            return None
        return self._build(telegram_id, session)

    async def request_otp(self, phone: str) -> StaffCredentials:
        """
        Проверить номер на бэкенде.

        Raises:
            AuthenticationFailed: номер не зарегистрирован
            NetworkFailure: бэкенд недоступен
        """
        return await self.backend.validate_staff(phone)

    async def login(self, telegram_id: int, credentials: StaffCredentials, otp: str) -> CourierContext:
        """
        Сверить OTP и открыть сессию. Курьер входит в состоянии "не на линии".

        Raises:
            AuthenticationFailed: неверный код
        """
        if not credentials.mobile_otp or otp.strip() != credentials.mobile_otp:
            logger.info("Wrong OTP for staff=%s (telegram=%s)", credentials.id, telegram_id)
            raise AuthenticationFailed("Неверный код подтверждения")

        session = StaffSession(
            staff_id=credentials.id,
            res_id=credentials.res_id,
            phone=credentials.mobile_number,
        )
        await self.sessions.save(telegram_id, session)
        logger.info("Courier staff=%s logged in (telegram=%s)", session.staff_id, telegram_id)
        return self._build(telegram_id, session)

    async def logout(self, telegram_id: int) -> None:
        self._contexts.pop(telegram_id, None)
        try:
            await self.sessions.delete(telegram_id)
        except PersistenceFailure as e:
            logger.error("Failed to delete session for %s: %s", telegram_id, e)
        logger.info("Courier telegram=%s logged out", telegram_id)
