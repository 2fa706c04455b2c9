"""
Notification Service — 通知レコードの保存

受信したイベントをそのまま payload に埋め込み、受信時刻とともに保存する。
"""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..shared.events import OrderConfirmation, PaymentConfirmation
from .tables import notifications


class NotificationType(str, Enum):
    PAYMENT_CONFIRMATION = "PAYMENT_CONFIRMATION"
    ORDER_CONFIRMATION = "ORDER_CONFIRMATION"


def notification_type_for(event: OrderConfirmation | PaymentConfirmation) -> NotificationType:
    if isinstance(event, OrderConfirmation):
        return NotificationType.ORDER_CONFIRMATION
    return NotificationType.PAYMENT_CONFIRMATION


async def save_notification(
    session: AsyncSession,
    event: OrderConfirmation | PaymentConfirmation,
) -> int:
    """
    通知レコードを INSERT する。

    同じ (type, order_reference) が既にあれば IntegrityError になる。
    """
    result = await session.execute(
        insert(notifications)
        .values(
            type=notification_type_for(event).value,
            order_reference=event.order_reference,
            received_at=datetime.now(timezone.utc),
            payload=event.model_dump(mode="json"),
        )
        .returning(notifications.c.id)
    )
    return result.scalar_one()
