"""
Order Service — リモートサービスクライアント

Customer / Product / Payment Service を httpx で呼び出す。
  - 接続先 URL とタイムアウトは生成時に明示的に渡す
  - 認証ヘッダ・相関 ID は CallContext から毎回明示的に付与する
  - タイムアウト・接続失敗は ServiceUnavailable (一時的な障害) に変換する
  - HTTP ステータスは業務エラー (404 / 409 / 支払い拒否) に変換する
"""

import logging
from urllib.parse import quote

import httpx

from ..shared.context import CallContext
from ..shared.contracts import PaymentRequest, PurchaseLine
from ..shared.errors import (
    BusinessRuleError,
    InsufficientStock,
    PaymentFailed,
    ProductNotFound,
    ReservationFailed,
    ServiceUnavailable,
)
from ..shared.events import CustomerSnapshot, ProductSnapshot

logger = logging.getLogger(__name__)


def _error_body(resp: httpx.Response) -> dict:
    try:
        body = resp.json()
    except ValueError:
        return {"detail": resp.text}
    return body if isinstance(body, dict) else {"detail": body}


class _ServiceClient:
    service_name = "service"

    def __init__(self, http: httpx.AsyncClient, base_url: str) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")

    async def _request(
        self,
        method: str,
        url: str,
        ctx: CallContext,
        server_error_is_transient: bool = True,
        **kwargs,
    ) -> httpx.Response:
        try:
            resp = await self.http.request(method, url, headers=ctx.headers(), **kwargs)
        except httpx.TimeoutException as e:
            raise ServiceUnavailable(self.service_name, f"timed out ({type(e).__name__})") from e
        except httpx.TransportError as e:
            raise ServiceUnavailable(self.service_name, str(e) or type(e).__name__) from e

        if server_error_is_transient and resp.status_code >= 500:
            raise ServiceUnavailable(
                self.service_name, f"HTTP {resp.status_code}: {_error_body(resp).get('detail')}"
            )
        return resp


class CustomerClient(_ServiceClient):
    service_name = "customer-service"

    async def find_customer(
        self, customer_id: str, ctx: CallContext
    ) -> CustomerSnapshot | None:
        """顧客を取得する。存在しない場合は None (エラーではない)。"""
        url = f"{self.base_url}/{quote(customer_id, safe='')}"
        resp = await self._request("GET", url, ctx)
        if resp.status_code == 404:
            return None
        if resp.is_error:
            raise BusinessRuleError(
                f"Customer lookup was rejected: HTTP {resp.status_code}",
                customer_id=customer_id,
            )
        return CustomerSnapshot.model_validate(resp.json())


class ProductClient(_ServiceClient):
    service_name = "product-service"

    async def purchase(
        self, items: list[PurchaseLine], ctx: CallContext
    ) -> list[ProductSnapshot]:
        """
        在庫引き当てを依頼する。

        Product Service 側で全件 or 0 件が保証されるので、
        失敗時にこちらで戻す処理は不要。
        """
        resp = await self._request(
            "POST",
            f"{self.base_url}/purchase",
            ctx,
            json=[item.model_dump() for item in items],
        )

        if resp.status_code == 404:
            body = _error_body(resp)
            raise ProductNotFound(body.get("product_ids") or [i.product_id for i in items])
        if resp.status_code == 409:
            body = _error_body(resp)
            if body.get("error") == "InsufficientStock":
                raise InsufficientStock(
                    body["product_id"],
                    requested=body.get("requested"),
                    available=body.get("available"),
                )
            raise ReservationFailed(str(body.get("detail")))
        if resp.is_error:
            raise ReservationFailed(
                f"An error occurred while processing the products purchase: HTTP {resp.status_code}"
            )

        purchased = [ProductSnapshot.model_validate(p) for p in resp.json()]
        if len(purchased) != len(items):
            raise ReservationFailed(
                f"Expected {len(items)} purchase results, got {len(purchased)}"
            )
        return purchased


class PaymentClient(_ServiceClient):
    service_name = "payment-service"

    async def request_payment(
        self, payment: PaymentRequest, ctx: CallContext
    ) -> int | str | None:
        """
        支払いを依頼する。2xx 以外は PaymentFailed。

        2xx の本文は受付の目印として扱うだけで中身は問わない:
        {"payment_id": ...} / {"status": ...} / 素の値 / 空本文のどれでも成功。
        """
        resp = await self._request(
            "POST",
            self.base_url,
            ctx,
            server_error_is_transient=False,
            json=payment.model_dump(mode="json"),
        )
        if not resp.is_success:
            raise PaymentFailed(
                f"Payment was rejected: HTTP {resp.status_code}: {_error_body(resp).get('detail')}",
                order_id=payment.order_id,
                order_reference=payment.order_reference,
            )
        try:
            body = resp.json()
        except ValueError:
            body = resp.text.strip() or None
        if isinstance(body, dict):
            indicator = body.get("payment_id", body.get("status"))
        elif isinstance(body, (int, str)):
            indicator = body
        else:
            indicator = None
        logger.info("Payment accepted for order %s (%s)", payment.order_reference, indicator)
        return indicator
