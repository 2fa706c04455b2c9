"""
Notification Service — Redis Streams サブスクライバー

order_events / payment_events をコンシューマーグループで購読し、
受信したイベントを NotificationHandler に渡す。

Pub/Sub と違い、Streams はサービス停止中のイベントも保持する。
  - XREADGROUP で新着を読み、ハンドラが正常に戻ってから XACK する
  - 処理に失敗したメッセージは ACK されず PEL (保留リスト) に残る
  - claim_idle_ms 以上放置された保留メッセージは XAUTOCLAIM で取り戻して
    再処理する (= 再配送。at-least-once)

チャネル内の順序を守るため 1 ストリームのメッセージは逐次処理し、
失敗したらそのストリームは保留分を処理し終えるまで新着へ進まない。
ストリーム同士 (order / payment) は並行に処理する。
"""

import asyncio
import logging

import redis.asyncio as aioredis
from pydantic import ValidationError
from redis.exceptions import RedisError, ResponseError

from ..shared.config import NotificationServiceConfig
from ..shared.events import decode_event
from .handlers import NotificationHandler

logger = logging.getLogger(__name__)


class StreamSubscriber:
    def __init__(
        self,
        redis: aioredis.Redis,
        config: NotificationServiceConfig,
        handler: NotificationHandler,
        retry_delay: float = 1.0,
    ) -> None:
        self.redis = redis
        self.config = config
        self.handler = handler
        self.retry_delay = retry_delay
        self.streams = [config.streams.order_stream, config.streams.payment_stream]
        self.ready = False

    async def ensure_groups(self) -> None:
        for stream in self.streams:
            try:
                await self.redis.xgroup_create(stream, self.config.group, id="0", mkstream=True)
                logger.info("Created consumer group %s on %s", self.config.group, stream)
            except ResponseError as e:
                if "BUSYGROUP" not in str(e):
                    raise

    async def handle_entry(self, stream: str, message_id: str, fields: dict | None) -> None:
        """1 メッセージを処理して ACK する。保存失敗は送出 (ACK しない)。"""
        raw = (fields or {}).get("payload")
        try:
            event = decode_event(raw) if raw is not None else None
        except ValidationError:
            event = None
        if event is None:
            # 解釈できないメッセージは何度配送しても同じなので破棄する
            logger.error("Discarding undecodable message %s on %s", message_id, stream)
            await self.redis.xack(stream, self.config.group, message_id)
            return

        await self.handler.on_event(event)
        await self.redis.xack(stream, self.config.group, message_id)

    async def process_stream(self, stream: str, entries: list) -> int:
        """
        1 ストリーム分を先頭から逐次処理し、ACK した件数を返す。

        失敗した時点でそのバッチの処理をやめる。失敗したメッセージと
        それ以降のメッセージは PEL に残り、次回以降に同じ順序で再配送される。
        """
        handled = 0
        for message_id, fields in entries:
            try:
                await self.handle_entry(stream, message_id, fields)
            except Exception:
                logger.exception(
                    "Failed to process %s from %s; holding the stream for redelivery",
                    message_id,
                    stream,
                )
                break
            handled += 1
        return handled

    async def poll_stream(self, stream: str) -> int:
        """
        1 ストリームを 1 回ポーリングする。

        保留中のメッセージがある間は新着 (">") を読まず、
        XAUTOCLAIM で取り戻した保留分を古い順に処理する。
        """
        summary = await self.redis.xpending(stream, self.config.group)
        if summary and summary.get("pending"):
            result = await self.redis.xautoclaim(
                stream,
                self.config.group,
                self.config.consumer_name,
                min_idle_time=self.config.claim_idle_ms,
                start_id="0-0",
                count=self.config.batch_size,
            )
            entries = result[1] if result else []
            if not entries:
                # まだ claim_idle_ms に達していない
                await asyncio.sleep(self.config.block_ms / 1000)
                return 0
            logger.info("Reclaimed %d pending message(s) on %s", len(entries), stream)
            return await self.process_stream(stream, entries)

        response = await self.redis.xreadgroup(
            self.config.group,
            self.config.consumer_name,
            {stream: ">"},
            count=self.config.batch_size,
            block=self.config.block_ms,
        )
        entries = [entry for _, stream_entries in response or [] for entry in stream_entries]
        return await self.process_stream(stream, entries)

    async def poll_once(self) -> int:
        """全ストリームを並行に 1 回ずつポーリングし、ACK した件数を返す。"""
        counts = await asyncio.gather(*(self.poll_stream(stream) for stream in self.streams))
        return sum(counts)

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """
        shutdown_event がセットされるまでポーリングを続ける。

        Redis に繋がらない間はグループ作成も含めて retry_delay ごとに再試行する。
        """
        while not shutdown_event.is_set():
            try:
                if not self.ready:
                    await self.ensure_groups()
                    self.ready = True
                    logger.info(
                        "Subscribed to %s as %s", ", ".join(self.streams), self.config.consumer_name
                    )
                await self.poll_once()
            except RedisError:
                logger.exception("Redis error while consuming streams")
                await asyncio.sleep(self.retry_delay)
