"""
Product Service — クエリハンドラ (Read 側)
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .tables import products


def _to_dict(row) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "description": row.description,
        "available_quantity": row.available_quantity,
        "price": str(row.price),
    }


async def get_product(session: AsyncSession, product_id: int) -> dict | None:
    result = await session.execute(select(products).where(products.c.id == product_id))
    row = result.fetchone()
    if not row:
        return None
    return _to_dict(row)


async def list_products(session: AsyncSession) -> list[dict]:
    result = await session.execute(select(products).order_by(products.c.id))
    return [_to_dict(row) for row in result.fetchall()]
