"""
共通 — サービス間のリクエスト契約

Order Service → Product Service / Payment Service へ送るリクエストボディ。
"""

from decimal import Decimal

from pydantic import BaseModel, Field

from .events import CustomerSnapshot, PaymentMethod


class PurchaseLine(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)


class PaymentRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    payment_method: PaymentMethod
    order_id: int
    order_reference: str
    customer: CustomerSnapshot
