"""
Notification Service — クエリハンドラ
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .tables import notifications


async def list_notifications(session: AsyncSession, type: str | None = None) -> list[dict]:
    """通知レコードを受信順に返す。"""
    query = select(notifications).order_by(notifications.c.id)
    if type:
        query = query.where(notifications.c.type == type)
    result = await session.execute(query)
    return [
        {
            "id": row.id,
            "type": row.type,
            "order_reference": row.order_reference,
            "received_at": row.received_at.isoformat() if row.received_at else None,
            "payload": row.payload,
        }
        for row in result.fetchall()
    ]
