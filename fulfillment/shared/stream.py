"""
共通 — イベント発行 (Redis Streams)

Pub/Sub は fire-and-forget で購読者不在の間のイベントが失われるため、
永続的なログである Redis Streams に XADD する。
購読側はコンシューマーグループで読み、処理後に XACK する (at-least-once)。

  order_events   : OrderConfirmation
  payment_events : PaymentConfirmation
"""

import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .config import StreamConfig
from .errors import EventPublishFailed
from .events import OrderConfirmation, PaymentConfirmation, encode_event

logger = logging.getLogger(__name__)


class EventPublisher:
    def __init__(self, redis: aioredis.Redis, streams: StreamConfig) -> None:
        self.redis = redis
        self.streams = streams

    def stream_for(self, event: OrderConfirmation | PaymentConfirmation) -> str:
        if isinstance(event, OrderConfirmation):
            return self.streams.order_stream
        return self.streams.payment_stream

    async def publish(self, event: OrderConfirmation | PaymentConfirmation) -> str:
        """
        イベントをストリームに追記する。

        ブローカーが受理するまで待つが、購読側の処理結果は待たない。
        """
        stream = self.stream_for(event)
        try:
            message_id = await self.redis.xadd(
                stream,
                {"event_type": event.event_type, "payload": encode_event(event)},
                maxlen=self.streams.maxlen,
                approximate=True,
            )
        except RedisError as e:
            raise EventPublishFailed(
                f"Could not publish {event.event_type} for order {event.order_reference}: {e}",
                order_reference=event.order_reference,
            ) from e
        logger.info(
            "Published %s for order %s to %s (%s)",
            event.event_type,
            event.order_reference,
            stream,
            message_id,
        )
        return message_id
