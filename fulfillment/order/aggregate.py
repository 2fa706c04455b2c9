"""
Order Service — 注文集約 (Order Aggregate) とワークフロー状態

注文の合計金額は「明細の 数量 × 購入時単価 の総和」。
生成時に一度だけ計算し、あとから再計算はしない。

ワークフロー状態遷移:
    PENDING → RESERVED → PERSISTED → PAID → CONFIRMED
    いずれかのステップで失敗 → FAILED_AT_<STEP>

補償トランザクションは実行しない。
失敗したステップを記録しておき、運用側で突き合わせできるようにする。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from ..shared.errors import InvalidRequest
from ..shared.events import PaymentMethod, ProductSnapshot


class WorkflowStatus(str, Enum):
    PENDING = "PENDING"
    RESERVED = "RESERVED"
    PERSISTED = "PERSISTED"
    PAID = "PAID"
    CONFIRMED = "CONFIRMED"
    FAILED_AT_CUSTOMER = "FAILED_AT_CUSTOMER"
    FAILED_AT_RESERVATION = "FAILED_AT_RESERVATION"
    FAILED_AT_PERSISTENCE = "FAILED_AT_PERSISTENCE"
    FAILED_AT_PAYMENT = "FAILED_AT_PAYMENT"
    FAILED_AT_PUBLISH = "FAILED_AT_PUBLISH"


def new_reference() -> str:
    return f"ORD-{uuid4().hex[:12].upper()}"


@dataclass(frozen=True)
class OrderLine:
    product_id: int
    quantity: int
    unit_price: Decimal

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise InvalidRequest(
                f"Quantity must be positive for product {self.product_id}",
                product_id=self.product_id,
            )

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class Order:
    reference: str
    payment_method: PaymentMethod
    customer_id: str
    lines: tuple[OrderLine, ...]
    total_amount: Decimal = field(init=False)

    def __post_init__(self) -> None:
        if not self.lines:
            raise InvalidRequest("An order needs at least one line", reference=self.reference)
        total = sum((line.subtotal for line in self.lines), Decimal("0"))
        object.__setattr__(self, "total_amount", total)

    @classmethod
    def from_purchase(
        cls,
        reference: str,
        payment_method: PaymentMethod,
        customer_id: str,
        purchased: list[ProductSnapshot],
    ) -> "Order":
        """引き当て結果 (購入時単価つき) から注文を組み立てる。"""
        return cls(
            reference=reference,
            payment_method=payment_method,
            customer_id=customer_id,
            lines=tuple(
                OrderLine(product_id=p.product_id, quantity=p.quantity, unit_price=p.price)
                for p in purchased
            ),
        )


@dataclass
class OrderWorkflow:
    """
    1 件の注文ワークフローの記録。

    steps は各ステップの実行ログ:
        {"step": 1, "action": "ResolveCustomer", "status": "COMPLETED", "timestamp": ...}
    """

    reference: str
    customer_id: str
    requested_amount: Decimal | None = None
    status: WorkflowStatus = WorkflowStatus.PENDING
    order_id: int | None = None
    error: str | None = None
    steps: list[dict] = field(default_factory=list)

    def begin_step(self, step: int, action: str) -> None:
        self.steps.append(
            {
                "step": step,
                "action": action,
                "status": "EXECUTING",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )

    def complete_step(self) -> None:
        self.steps[-1]["status"] = "COMPLETED"

    def fail_step(self, status: WorkflowStatus, error: Exception) -> None:
        self.steps[-1]["status"] = "FAILED"
        self.steps[-1]["error"] = str(error)
        self.status = status
        self.error = f"{type(error).__name__}: {error}"
