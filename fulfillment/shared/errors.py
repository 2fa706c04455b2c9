"""
共通 — エラー分類

  - 検証エラー      (InvalidRequest)                        → 422
  - 未存在エラー    (CustomerNotFound / ProductNotFound ...) → 404
  - 業務ルール違反  (InsufficientStock / ReservationFailed)  → 409
  - 永続化後の失敗  (PaymentFailed / EventPublishFailed)     → 502
  - 一時的な障害    (ServiceUnavailable / ReservationConflict) → 503

各例外は違反したエンティティ(顧客 ID・商品 ID など)を context に持ち、
HTTP レスポンスにそのまま含める。
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class FulfillmentError(Exception):
    status_code = 500
    code = "FulfillmentError"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.message, **self.context}


# ── 検証エラー ───────────────────────────────────


class InvalidRequest(FulfillmentError):
    status_code = 422
    code = "InvalidRequest"


# ── 未存在エラー ─────────────────────────────────


class NotFoundError(FulfillmentError):
    status_code = 404
    code = "NotFound"


class CustomerNotFound(NotFoundError):
    code = "CustomerNotFound"

    def __init__(self, customer_id: str) -> None:
        super().__init__(
            f"No customer exists with the provided ID: {customer_id}",
            customer_id=customer_id,
        )
        self.customer_id = customer_id


class ProductNotFound(NotFoundError):
    code = "ProductNotFound"

    def __init__(self, product_ids: list[int]) -> None:
        super().__init__(
            f"One or more products does not exist: {product_ids}",
            product_ids=product_ids,
        )
        self.product_ids = product_ids


class OrderNotFound(NotFoundError):
    code = "OrderNotFound"

    def __init__(self, order_id: Any) -> None:
        super().__init__(f"No order found with the provided ID: {order_id}", order_id=order_id)


# ── 業務ルール違反 ───────────────────────────────


class BusinessRuleError(FulfillmentError):
    status_code = 409
    code = "BusinessRuleViolation"


class InsufficientStock(BusinessRuleError):
    code = "InsufficientStock"

    def __init__(
        self,
        product_id: int,
        requested: int | None = None,
        available: int | None = None,
    ) -> None:
        super().__init__(
            f"Insufficient stock quantity for product with ID: {product_id}",
            product_id=product_id,
            requested=requested,
            available=available,
        )
        self.product_id = product_id


class ReservationFailed(BusinessRuleError):
    code = "ReservationFailed"


class PaymentFailed(BusinessRuleError):
    """注文の永続化後に発生した支払い失敗 (補償はしない)"""

    status_code = 502
    code = "PaymentFailed"


class EventPublishFailed(BusinessRuleError):
    status_code = 502
    code = "EventPublishFailed"


# ── 一時的な障害 ─────────────────────────────────


class TransientError(FulfillmentError):
    status_code = 503
    code = "TransientError"


class ServiceUnavailable(TransientError):
    code = "ServiceUnavailable"

    def __init__(self, service: str, reason: str) -> None:
        super().__init__(f"{service} is unavailable: {reason}", service=service)
        self.service = service


class ReservationConflict(TransientError):
    code = "ReservationConflict"


# ── FastAPI 連携 ─────────────────────────────────


async def _handle_fulfillment_error(request: Request, exc: FulfillmentError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FulfillmentError, _handle_fulfillment_error)
