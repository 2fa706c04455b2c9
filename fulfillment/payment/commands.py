"""
Payment Service — コマンドハンドラ

支払いを記録し、payment_events に PaymentConfirmation を発行する。
通知サービスはこのイベントから支払い完了メールを送る。
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..shared.contracts import PaymentRequest
from ..shared.events import PaymentConfirmation
from ..shared.stream import EventPublisher
from .tables import payments

logger = logging.getLogger(__name__)


async def create_payment(
    session: AsyncSession,
    publisher: EventPublisher,
    request: PaymentRequest,
) -> int:
    """
    支払い作成コマンド

    1. payment に INSERT してコミット
    2. PaymentConfirmation を発行 (顧客名・メールはスナップショットから)
    """
    result = await session.execute(
        insert(payments)
        .values(
            order_id=request.order_id,
            order_reference=request.order_reference,
            amount=request.amount,
            payment_method=request.payment_method.value,
            customer_id=request.customer.id,
            created_at=datetime.now(timezone.utc),
        )
        .returning(payments.c.id)
    )
    payment_id = result.scalar_one()
    await session.commit()
    logger.info("Payment %s recorded for order %s", payment_id, request.order_reference)

    await publisher.publish(
        PaymentConfirmation(
            order_reference=request.order_reference,
            amount=request.amount,
            payment_method=request.payment_method,
            customer_firstname=request.customer.firstname,
            customer_lastname=request.customer.lastname,
            customer_email=request.customer.email,
        )
    )
    return payment_id
