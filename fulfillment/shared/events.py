"""
共通 — イベント定義 (サービス間の契約)

フルフィルメントで発生した事実をイベントとして定義する。
イベントは過去形の事実として扱い、不変(frozen)とする。

下流サービスが上流へ再問い合わせしなくて済むよう、
顧客・商品の情報は発行時点のスナップショットとして埋め込む。

受信側は event_type を判別子とした tagged union (FulfillmentEvent) として
デシリアライズ時に型を確定させる。
"""

from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

SCHEMA_VERSION = 1


class PaymentMethod(str, Enum):
    PAYPAL = "PAYPAL"
    CREDIT_CARD = "CREDIT_CARD"
    VISA = "VISA"
    MASTER_CARD = "MASTER_CARD"
    BITCOIN = "BITCOIN"
    CASH = "CASH"


class Address(BaseModel):
    # Customer Service は camelCase (houseNumber, zipCode) で返す
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    street: str | None = None
    house_number: str | None = None
    zip_code: str | None = None


class CustomerSnapshot(BaseModel):
    """顧客のスナップショット"""

    model_config = ConfigDict(frozen=True)

    id: str
    firstname: str
    lastname: str
    email: str
    address: Address | None = None

    @property
    def display_name(self) -> str:
        return f"{self.firstname} {self.lastname}".strip()


class ProductSnapshot(BaseModel):
    """購入時点の商品スナップショット (引き当て結果そのもの)"""

    model_config = ConfigDict(frozen=True)

    product_id: int
    name: str
    description: str | None = None
    price: Decimal
    quantity: int


class OrderConfirmation(BaseModel):
    """注文が確定された (order チャネル)"""

    model_config = ConfigDict(frozen=True)

    event_type: Literal["OrderConfirmation"] = "OrderConfirmation"
    schema_version: int = SCHEMA_VERSION
    order_reference: str
    total_amount: Decimal
    payment_method: PaymentMethod
    customer: CustomerSnapshot
    products: list[ProductSnapshot]


class PaymentConfirmation(BaseModel):
    """支払いが受け付けられた (payment チャネル)"""

    model_config = ConfigDict(frozen=True)

    event_type: Literal["PaymentConfirmation"] = "PaymentConfirmation"
    schema_version: int = SCHEMA_VERSION
    order_reference: str
    amount: Decimal
    payment_method: PaymentMethod
    customer_firstname: str
    customer_lastname: str
    customer_email: str

    @property
    def display_name(self) -> str:
        return f"{self.customer_firstname} {self.customer_lastname}".strip()


FulfillmentEvent = Annotated[
    Union[OrderConfirmation, PaymentConfirmation],
    Field(discriminator="event_type"),
]

_event_adapter: TypeAdapter[FulfillmentEvent] = TypeAdapter(FulfillmentEvent)


def decode_event(raw: str | bytes) -> OrderConfirmation | PaymentConfirmation:
    """JSON からイベントを復元する。未知の event_type は ValidationError。"""
    return _event_adapter.validate_json(raw)


def encode_event(event: OrderConfirmation | PaymentConfirmation) -> str:
    return event.model_dump_json()
