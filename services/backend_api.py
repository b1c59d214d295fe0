"""
HTTP-клиент API заказов (бэкенд ресторанов).

Любая ошибка транспорта, таймаут, не-2xx ответ или неожиданная форма
ответа превращается в NetworkFailure. Повторов нет: неудачный запрос
сообщается один раз, решение принимает вызывающий.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from config import config
from services.errors import AuthenticationFailed, NetworkFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StaffCredentials:
    """Ответ проверки номера курьера (OTP приходит в ответе, сверяется на стороне бота)."""
    id: int
    res_id: int
    mobile_number: str
    mobile_otp: str


class BackendClient:
    """Асинхронный клиент бэкенда. Одна aiohttp-сессия на процесс."""

    def __init__(
        self,
        base_url: str = config.BACKEND_API_URL,
        timeout: float = config.BACKEND_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        session = await self._get_session()
        logger.debug("API %s %s params=%s", method, url, kwargs.get("params"))
        try:
            async with session.request(method, url, timeout=self._timeout, **kwargs) as response:
                if response.status >= 400:
                    body = await response.text()
                    logger.warning("API %s %s -> %s: %s", method, url, response.status, body[:200])
                    raise NetworkFailure(
                        f"{method} {path} failed with HTTP {response.status}",
                        status=response.status,
                    )
                if response.content_length == 0:
                    return None
                text = await response.text()
                if not text.strip():
                    return None
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise NetworkFailure(f"{method} {path} returned invalid JSON") from e
        except asyncio.TimeoutError as e:
            logger.warning("API %s %s timed out", method, url)
            raise NetworkFailure(f"{method} {path} timed out") from e
        except aiohttp.ClientError as e:
            logger.warning("API %s %s transport error: %r", method, url, e)
            raise NetworkFailure(f"{method} {path} failed: {e}") from e

    async def _get_list(self, path: str, **kwargs) -> List[Dict[str, Any]]:
        data = await self._request("GET", path, **kwargs)
        if data is None:
            return []
        if not isinstance(data, list):
            raise NetworkFailure(f"GET {path} returned {type(data).__name__}, expected a list")
        return data

    # --- Staff ---

    async def validate_staff(self, mobile: str) -> StaffCredentials:
        """
        Проверить, что номер зарегистрирован за курьером.

        Raises:
            AuthenticationFailed: номер не найден
            NetworkFailure: ошибка запроса
        """
        data = await self._get_list(f"{config.STAFF_VALIDATE_PATH}{mobile}")
        if not data or str(data[0].get("mobilenumber")) != mobile:
            logger.info("Staff validation failed for mobile=%s (records=%s)", mobile, len(data))
            raise AuthenticationFailed("Номер не зарегистрирован")
        first = data[0]
        try:
            return StaffCredentials(
                id=int(first["id"]),
                res_id=int(first["resId"]),
                mobile_number=str(first["mobilenumber"]),
                mobile_otp=str(first.get("mobileotp") or ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise NetworkFailure(f"Malformed staff record: {e}") from e

    async def get_wallet(self, staff_id: int) -> Dict[str, Any]:
        data = await self._request("GET", f"{config.WALLET_PATH}{staff_id}")
        if isinstance(data, list):
            data = data[0] if data else {}
        if not isinstance(data, dict):
            raise NetworkFailure("Wallet response is not an object")
        return data

    # --- Orders ---

    async def get_available_orders(self, res_id: int) -> List[Dict[str, Any]]:
        """Свободные заказы ресторана (пул, ожидающий курьера)."""
        params = {
            "resId": res_id,
            "branchId": config.BRANCH_ID,
            "statusId": config.AVAILABLE_STATUS_ID,
            "ordertypeId": config.ORDER_TYPE_ID,
        }
        return await self._get_list(config.AVAILABLE_ORDERS_PATH, params=params)

    async def get_assigned_orders(self, staff_id: int) -> List[Dict[str, Any]]:
        """Заказы, назначенные курьеру (включая завершённые)."""
        return await self._get_list(f"{config.ASSIGNED_ORDERS_PATH}{staff_id}")

    async def update_order_status(self, order_id: int, status_id: int, staff_id: int, contact_no: str) -> None:
        """Отправить новый статус заказа. Успех определяется только HTTP-кодом."""
        payload = {
            "id": int(order_id),
            "statusId": int(status_id),
            "deliveryStaffId": int(staff_id),
            "deliveryStaffContactNo": contact_no,
        }
        await self._request("POST", config.UPDATE_STATUS_PATH, json=payload)
        logger.info("Order %s status -> %s (staff=%s)", order_id, status_id, staff_id)
