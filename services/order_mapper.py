"""
Преобразование заказов бэкенда (camelCase JSON) во внутреннюю сущность Order.

Запись сначала валидируется Pydantic-моделью ApiOrder, затем статус
разрешается через реестр статусов. Функции чистые, без побочных эффектов.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from services.errors import OrderMappingError, UnknownStatus
from services.statuses import lookup

logger = logging.getLogger(__name__)

DEFAULT_DELIVERY_FEE = 5.0


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"


# "Оплата при получении" у бэкенда означает наличные
_PAYMENT_ALIASES = {
    "pay on delivery": PaymentMethod.CASH,
    "cash": PaymentMethod.CASH,
    "card": PaymentMethod.CARD,
    "upi": PaymentMethod.UPI,
}


# --- Входные модели (формат бэкенда) ---

class ApiItem(BaseModel):
    """Позиция заказа в ответе бэкенда."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    item_id: int = Field(..., alias="itemId")
    item_name: str = Field(..., alias="itemname")
    quantity: int = Field(..., ge=0)
    item_price: float = Field(..., alias="itemPrice")
    item_instruction: Optional[str] = Field(None, alias="itemInstruction")


class ApiOrder(BaseModel):
    """Заказ в ответе бэкенда."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int
    order_id: str = Field(..., alias="orderId")
    status_id: int = Field(..., alias="statusId")
    status_name: Optional[str] = Field(None, alias="statusName")
    cust_name: Optional[str] = Field(None, alias="custName")
    customer_contact_no: str = Field("", alias="customerContactNo")
    restaurant_name: str = Field("", alias="restaurantName")
    res_address: str = Field("", alias="resAddress")
    customer_delivery_address: str = Field("", alias="customerDeliveryAddress")
    items: List[ApiItem] = Field(default_factory=list)
    amount: float = 0.0
    delivery_fee: Optional[float] = Field(None, alias="deliveryFee")
    general_instruction: Optional[str] = Field(None, alias="generalInstruction")
    payment_type_name: str = Field("", alias="paymentTypeName")
    res_lat: float = Field(0.0, alias="resLat")
    res_log: float = Field(0.0, alias="resLog")
    c_lat: float = Field(0.0, alias="cLat")
    c_log: float = Field(0.0, alias="cLog")
    order_date: str = Field(..., alias="orderDate")
    order_time: str = Field(..., alias="orderTime")
    vendor_accepted_time_in_utc: Optional[str] = Field(None, alias="vendorAcceptedTimeInUTC")
    ds_assigned_time_in_utc: Optional[str] = Field(None, alias="dsAssignedTimeInUTC")
    delivered_time: Optional[str] = Field(None, alias="deliveredTime")

    @field_validator("order_id", mode="before")
    @classmethod
    def coerce_order_number(cls, v: Any) -> Any:
        """Некоторые филиалы присылают номер заказа числом."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("payment_type_name", "customer_contact_no", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


# --- Внутренние сущности ---

@dataclass(slots=True)
class Location:
    latitude: float
    longitude: float
    address: str


@dataclass(slots=True)
class OrderItem:
    id: str
    name: str
    quantity: int
    price: float
    customizations: Optional[List[str]] = None


@dataclass(slots=True)
class Order:
    """
    Заказ во внутреннем представлении.

    status (имя стадии) и status_id всегда согласованы по реестру статусов;
    менять их можно только вместе через apply_status().
    """
    id: str
    order_number: str
    status: str
    status_id: int
    customer_phone: str
    restaurant_name: str
    restaurant_address: str
    delivery_address: str
    total_amount: float
    delivery_fee: float
    pickup_location: Location
    drop_location: Location
    created_at: str
    payment_method: PaymentMethod
    items: List[OrderItem] = field(default_factory=list)
    customer_name: Optional[str] = None
    accepted_at: Optional[str] = None
    picked_at: Optional[str] = None
    delivered_at: Optional[str] = None
    special_instructions: Optional[str] = None
    distance: Optional[float] = None
    estimated_time: Optional[int] = None

    def apply_status(self, code: int) -> None:
        """Установить статус по коду (имя берётся из реестра)."""
        info = lookup(code)
        self.status_id = int(info.code)
        self.status = info.name


def normalize_payment_method(raw: Optional[str]) -> PaymentMethod:
    """Нормализовать способ оплаты; всё нераспознанное считается наличными."""
    if not raw:
        return PaymentMethod.CASH
    return _PAYMENT_ALIASES.get(raw.strip().lower(), PaymentMethod.CASH)


def map_api_item(item: ApiItem) -> OrderItem:
    return OrderItem(
        id=str(item.item_id),
        name=item.item_name.strip(),
        quantity=item.quantity,
        price=item.item_price,
        customizations=[item.item_instruction] if item.item_instruction else None,
    )


def map_api_order(raw: dict | ApiOrder, default_delivery_fee: float = DEFAULT_DELIVERY_FEE) -> Order:
    """
    Преобразовать запись бэкенда в Order.

    Raises:
        UnknownStatus: statusId отсутствует в реестре
        OrderMappingError: запись не прошла валидацию
    """
    if isinstance(raw, ApiOrder):
        api = raw
    else:
        try:
            api = ApiOrder.model_validate(raw)
        except ValidationError as e:
            raise OrderMappingError(f"Malformed order record: {e.error_count()} validation error(s)") from e

    info = lookup(api.status_id)

    return Order(
        id=str(api.id),
        order_number=api.order_id,
        status=info.name,
        status_id=int(info.code),
        customer_name=api.cust_name or None,
        customer_phone=api.customer_contact_no,
        restaurant_name=api.restaurant_name,
        restaurant_address=api.res_address,
        delivery_address=api.customer_delivery_address,
        items=[map_api_item(i) for i in api.items],
        total_amount=api.amount,
        delivery_fee=api.delivery_fee if api.delivery_fee is not None else default_delivery_fee,
        pickup_location=Location(api.res_lat, api.res_log, api.res_address),
        drop_location=Location(api.c_lat, api.c_log, api.customer_delivery_address),
        created_at=f"{api.order_date}T{api.order_time}",
        accepted_at=api.vendor_accepted_time_in_utc or None,
        picked_at=api.ds_assigned_time_in_utc or None,
        delivered_at=api.delivered_time or None,
        special_instructions=api.general_instruction or None,
        payment_method=normalize_payment_method(api.payment_type_name),
    )


def map_api_orders(raws: Iterable[Any], default_delivery_fee: float = DEFAULT_DELIVERY_FEE) -> List[Order]:
    """
    Преобразовать пачку записей. Ошибочные записи логируются и пропускаются:
    один битый заказ не должен ронять весь список.
    """
    orders: List[Order] = []
    for raw in raws:
        try:
            orders.append(map_api_order(raw, default_delivery_fee))
        except UnknownStatus as e:
            logger.warning(
                "Dropping order id=%s: unknown status %r",
                raw.get("id") if isinstance(raw, dict) else "?", e.code,
            )
        except OrderMappingError as e:
            logger.warning(
                "Dropping order id=%s: %s",
                raw.get("id") if isinstance(raw, dict) else "?", e,
            )
    return orders
