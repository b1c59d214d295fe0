from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

# config.py валидирует токен при импорте
os.environ.setdefault("BOT_TOKEN", "123456:TEST-TOKEN")

import pytest

from services.backend_api import StaffCredentials
from services.errors import NetworkFailure
from services.event_bus import OrderUpdateBus
from services.order_store import OrderStore
from services.rejection_ledger import RejectionLedger
from services.storage import MemoryKeyValueStorage

STAFF_ID = 77
RES_ID = 12
PHONE = "9876543210"


def make_raw_order(order_id: int = 101, status_id: int = 52, **overrides: Any) -> Dict[str, Any]:
    """Запись заказа в формате бэкенда."""
    raw = {
        "id": order_id,
        "orderId": f"ORD-{order_id}",
        "statusId": status_id,
        "statusName": "whatever",
        "custName": "Ravi",
        "customerContactNo": "9123456780",
        "restaurantName": "Spice Hub",
        "resAddress": "MG Road 1",
        "customerDeliveryAddress": "Park Street 5",
        "items": [
            {"itemId": 1, "itemname": " Paneer Tikka ", "quantity": 2, "itemPrice": 150.0},
            {"itemId": 2, "itemname": "Naan", "quantity": 1, "itemPrice": 40.0, "itemInstruction": "extra butter"},
        ],
        "amount": 340.0,
        "generalInstruction": "Ring twice",
        "paymentTypeName": "Pay on Delivery",
        "resLat": 12.9716,
        "resLog": 77.5946,
        "cLat": 12.9352,
        "cLog": 77.6245,
        "orderDate": "2026-10-17",
        "orderTime": "12:30:00",
        "someFieldWeDoNotKnow": True,
    }
    raw.update(overrides)
    return raw


class FakeBackend:
    """Бэкенд в памяти; ответы и сбои задаются в тесте."""

    def __init__(self) -> None:
        self.available: List[Dict[str, Any]] = []
        self.assigned: List[Dict[str, Any]] = []
        self.wallet: Dict[str, Any] = {"balance": 120.5, "cashInHand": 40}
        self.staff: Optional[StaffCredentials] = StaffCredentials(STAFF_ID, RES_ID, PHONE, "4321")
        self.fail_available = False
        self.fail_assigned = False
        self.fail_update = False
        self.fail_wallet = False
        self.updates: List[tuple] = []
        self.calls: List[str] = []

    async def get_available_orders(self, res_id: int) -> List[Dict[str, Any]]:
        self.calls.append("available")
        if self.fail_available:
            raise NetworkFailure("available down")
        return [dict(o) for o in self.available]

    async def get_assigned_orders(self, staff_id: int) -> List[Dict[str, Any]]:
        self.calls.append("assigned")
        if self.fail_assigned:
            raise NetworkFailure("assigned down")
        return [dict(o) for o in self.assigned]

    async def update_order_status(self, order_id: int, status_id: int, staff_id: int, contact_no: str) -> None:
        self.calls.append("update")
        if self.fail_update:
            raise NetworkFailure("update rejected", status=500)
        self.updates.append((order_id, status_id, staff_id, contact_no))

    async def get_wallet(self, staff_id: int) -> Dict[str, Any]:
        self.calls.append("wallet")
        if self.fail_wallet:
            raise NetworkFailure("wallet down")
        return dict(self.wallet)

    async def validate_staff(self, mobile: str) -> StaffCredentials:
        from services.errors import AuthenticationFailed
        if self.staff is None or self.staff.mobile_number != mobile:
            raise AuthenticationFailed("Номер не зарегистрирован")
        return self.staff


class FakeBot:
    """Запоминает правки сообщений вместо вызова Telegram API."""

    def __init__(self) -> None:
        self.edits: List[Dict[str, Any]] = []

    async def edit_message_text(self, **kwargs: Any) -> bool:
        self.edits.append(kwargs)
        return True

    def last_text(self, message_id: Optional[int] = None) -> str:
        edits = [e for e in self.edits if message_id is None or e["message_id"] == message_id]
        return edits[-1]["text"]


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def kv_storage() -> MemoryKeyValueStorage:
    return MemoryKeyValueStorage()


@pytest.fixture
def bus() -> OrderUpdateBus:
    return OrderUpdateBus()


@pytest.fixture
def ledger(kv_storage: MemoryKeyValueStorage) -> RejectionLedger:
    return RejectionLedger(kv_storage, owner=STAFF_ID)


@pytest.fixture
def store(backend: FakeBackend, bus: OrderUpdateBus, ledger: RejectionLedger) -> OrderStore:
    return OrderStore(backend, bus, ledger, staff_id=STAFF_ID, res_id=RES_ID, contact_no=PHONE)


@pytest.fixture
def bot() -> FakeBot:
    return FakeBot()
