"""
Order Service — コマンドハンドラ (Write 側)

注文と注文明細を同じトランザクションで保存する。
途中でクラッシュしても「明細の無い注文」が残らないよう、
呼び出し側は session.begin() の中で save_order を呼ぶこと。
"""

from datetime import datetime, timezone

from sqlalchemy import insert, update
from sqlalchemy.ext.asyncio import AsyncSession

from .aggregate import Order, OrderWorkflow
from .tables import order_lines, order_workflows, orders


async def save_order(session: AsyncSession, order: Order) -> int:
    """
    注文保存コマンド

    1. 注文ヘッダを INSERT して採番された ID を得る
    2. 明細ごとに order_line を INSERT する
    """
    now = datetime.now(timezone.utc)

    result = await session.execute(
        insert(orders)
        .values(
            reference=order.reference,
            total_amount=order.total_amount,
            payment_method=order.payment_method.value,
            customer_id=order.customer_id,
            created_at=now,
        )
        .returning(orders.c.id)
    )
    order_id = result.scalar_one()

    await session.execute(
        insert(order_lines),
        [
            {
                "order_id": order_id,
                "product_id": line.product_id,
                "quantity": line.quantity,
                "unit_price": line.unit_price,
            }
            for line in order.lines
        ],
    )
    return order_id


async def insert_workflow(session: AsyncSession, workflow: OrderWorkflow) -> None:
    now = datetime.now(timezone.utc)
    await session.execute(
        insert(order_workflows).values(
            reference=workflow.reference,
            status=workflow.status.value,
            customer_id=workflow.customer_id,
            order_id=workflow.order_id,
            requested_amount=workflow.requested_amount,
            error=workflow.error,
            steps=list(workflow.steps),
            created_at=now,
            updated_at=now,
        )
    )


async def update_workflow(session: AsyncSession, workflow: OrderWorkflow) -> None:
    await session.execute(
        update(order_workflows)
        .where(order_workflows.c.reference == workflow.reference)
        .values(
            status=workflow.status.value,
            order_id=workflow.order_id,
            error=workflow.error,
            steps=[dict(step) for step in workflow.steps],
            updated_at=datetime.now(timezone.utc),
        )
    )
