"""
Order Orchestrator — 注文フルフィルメント・ワークフロー

中央のオーケストレーターが各サービスの呼び出し順序を制御する。

  ┌──────────────────────────────────────────────────────────────┐
  │  1. Customer Service で顧客を確認        (失敗 → 副作用なし) │
  │  2. Product Service で在庫を一括引き当て (失敗 → 副作用なし) │
  │  3. 注文を保存                         ┐ 同一ローカル         │
  │  4. 注文明細を保存                     ┘ トランザクション     │
  │  5. Payment Service に支払いを依頼                            │
  │  6. order_events に OrderConfirmation を発行                  │
  │  7. 注文 ID を返す                                            │
  └──────────────────────────────────────────────────────────────┘

ステップ 1・2 は前提条件で、失敗しても注文は何も保存されない。
ステップ 3 以降は「前進のみ」: 支払い・発行に失敗しても保存済みの注文や
引き当て済みの在庫は戻さない(補償トランザクションは実行しない)。
どのステップで止まったかは order_workflow に記録し、
例外はそのまま呼び出し元へ送出する。
"""

import logging
from contextlib import asynccontextmanager
from decimal import Decimal

from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..shared.context import CallContext
from ..shared.contracts import PaymentRequest, PurchaseLine
from ..shared.errors import BusinessRuleError, CustomerNotFound
from ..shared.events import OrderConfirmation, PaymentMethod
from ..shared.stream import EventPublisher
from . import commands
from .aggregate import Order, OrderWorkflow, WorkflowStatus, new_reference
from .clients import CustomerClient, PaymentClient, ProductClient

logger = logging.getLogger(__name__)


class OrderRequest(BaseModel):
    customer_id: str = Field(min_length=1)
    payment_method: PaymentMethod
    amount: Decimal | None = Field(default=None, gt=0)
    reference: str | None = Field(default=None, min_length=1, max_length=64)
    products: list[PurchaseLine] = Field(min_length=1)


class OrderOrchestrator:
    """注文ワークフローのオーケストレーター"""

    def __init__(
        self,
        customers: CustomerClient,
        products: ProductClient,
        payments: PaymentClient,
        publisher: EventPublisher,
        session_factory: sessionmaker,
    ) -> None:
        self.customers = customers
        self.products = products
        self.payments = payments
        self.publisher = publisher
        self.session_factory = session_factory

    async def create_order(self, request: OrderRequest, ctx: CallContext) -> int:
        workflow = OrderWorkflow(
            reference=request.reference or new_reference(),
            customer_id=request.customer_id,
            requested_amount=request.amount,
        )
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await commands.insert_workflow(session, workflow)
        except IntegrityError as e:
            raise BusinessRuleError(
                f"Order reference already exists: {workflow.reference}",
                reference=workflow.reference,
            ) from e

        # ── Step 1: 顧客を確認 ──────────────────────
        async with self._step(workflow, 1, "ResolveCustomer", WorkflowStatus.FAILED_AT_CUSTOMER):
            customer = await self.customers.find_customer(request.customer_id, ctx)
            if customer is None:
                raise CustomerNotFound(request.customer_id)

        # ── Step 2: 在庫を一括引き当て ──────────────
        async with self._step(
            workflow, 2, "ReserveProducts", WorkflowStatus.FAILED_AT_RESERVATION
        ):
            purchased = await self.products.purchase(request.products, ctx)
        await self._advance(workflow, WorkflowStatus.RESERVED)

        # ── Step 3, 4: 注文と明細を 1 トランザクションで保存 ──
        async with self._step(
            workflow, 3, "PersistOrder", WorkflowStatus.FAILED_AT_PERSISTENCE
        ):
            order = Order.from_purchase(
                workflow.reference, request.payment_method, request.customer_id, purchased
            )
            if request.amount is not None and request.amount != order.total_amount:
                logger.warning(
                    "Order %s: requested amount %s differs from purchased total %s; using the purchased total",
                    order.reference,
                    request.amount,
                    order.total_amount,
                )
            async with self.session_factory() as session:
                async with session.begin():
                    workflow.order_id = await commands.save_order(session, order)
        await self._advance(workflow, WorkflowStatus.PERSISTED)

        # ── Step 5: 支払いを依頼 ────────────────────
        async with self._step(workflow, 5, "RequestPayment", WorkflowStatus.FAILED_AT_PAYMENT):
            await self.payments.request_payment(
                PaymentRequest(
                    amount=order.total_amount,
                    payment_method=order.payment_method,
                    order_id=workflow.order_id,
                    order_reference=order.reference,
                    customer=customer,
                ),
                ctx,
            )
        await self._advance(workflow, WorkflowStatus.PAID)

        # ── Step 6: 注文確定イベントを発行 ──────────
        async with self._step(
            workflow, 6, "PublishOrderConfirmation", WorkflowStatus.FAILED_AT_PUBLISH
        ):
            await self.publisher.publish(
                OrderConfirmation(
                    order_reference=order.reference,
                    total_amount=order.total_amount,
                    payment_method=order.payment_method,
                    customer=customer,
                    products=purchased,
                )
            )
        await self._advance(workflow, WorkflowStatus.CONFIRMED)

        logger.info("Order %s created with id %s", order.reference, workflow.order_id)
        return workflow.order_id

    # ── ワークフロー記録 ─────────────────────────

    @asynccontextmanager
    async def _step(
        self,
        workflow: OrderWorkflow,
        step: int,
        action: str,
        failed_status: WorkflowStatus,
    ):
        """ステップの開始・失敗を記録する。例外は握りつぶさずに再送出する。"""
        workflow.begin_step(step, action)
        try:
            yield
        except Exception as e:
            workflow.fail_step(failed_status, e)
            logger.warning(
                "Order %s failed at step %d (%s): %s", workflow.reference, step, action, e
            )
            await self._record_failure(workflow)
            raise
        workflow.complete_step()

    async def _advance(self, workflow: OrderWorkflow, status: WorkflowStatus) -> None:
        workflow.status = status
        async with self.session_factory() as session:
            async with session.begin():
                await commands.update_workflow(session, workflow)

    async def _record_failure(self, workflow: OrderWorkflow) -> None:
        # 記録に失敗しても元の例外を優先して送出する
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await commands.update_workflow(session, workflow)
        except SQLAlchemyError:
            logger.exception("Could not record failure of order workflow %s", workflow.reference)
