"""
Order Service — クエリハンドラ (Read 側)
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .tables import order_lines, order_workflows, orders


def _order_to_dict(row) -> dict:
    return {
        "id": row.id,
        "reference": row.reference,
        "total_amount": str(row.total_amount),
        "payment_method": row.payment_method,
        "customer_id": row.customer_id,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "last_modified_at": row.last_modified_at.isoformat() if row.last_modified_at else None,
    }


async def get_order(session: AsyncSession, order_id: int) -> dict | None:
    """注文を明細つきで取得する。"""
    result = await session.execute(select(orders).where(orders.c.id == order_id))
    row = result.fetchone()
    if not row:
        return None

    lines = await session.execute(
        select(order_lines).where(order_lines.c.order_id == order_id).order_by(order_lines.c.id)
    )
    order = _order_to_dict(row)
    order["lines"] = [
        {
            "id": line.id,
            "product_id": line.product_id,
            "quantity": line.quantity,
            "unit_price": str(line.unit_price),
        }
        for line in lines.fetchall()
    ]
    return order


async def list_orders(session: AsyncSession) -> list[dict]:
    result = await session.execute(select(orders).order_by(orders.c.created_at.desc()))
    return [_order_to_dict(row) for row in result.fetchall()]


async def get_workflow(session: AsyncSession, reference: str) -> dict | None:
    result = await session.execute(
        select(order_workflows).where(order_workflows.c.reference == reference)
    )
    row = result.fetchone()
    if not row:
        return None
    return {
        "reference": row.reference,
        "status": row.status,
        "customer_id": row.customer_id,
        "order_id": row.order_id,
        "requested_amount": str(row.requested_amount) if row.requested_amount is not None else None,
        "error": row.error,
        "steps": row.steps,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }
