"""
Notification Service — イベントハンドラ

1 イベントの処理:  received → persisted → dispatched

  1. 種類の判定 (デシリアライズ時に OrderConfirmation / PaymentConfirmation に確定済み)
  2. 通知レコードを保存
  3. 宛先の表示名と種類別のメッセージを組み立て
  4. メールをバックグラウンドで送信
     送信失敗はログに残すだけで再送出しない
     → 壊れた送信経路がイベント消費を止めないようにする

保存に失敗した場合は例外をそのまま送出する。
呼び出し側 (サブスクライバー) は ACK せず、ブローカーが再配送する。

再配送の重複排除: 同じ (type, order_reference) のレコードが既にあれば
保存もメール送信も行わず False を返す (ACK はしてよい)。
"""

import asyncio
import logging
from email.message import EmailMessage

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from ..shared.events import OrderConfirmation, PaymentConfirmation
from . import commands
from .mail import EmailSender, build_message

logger = logging.getLogger(__name__)


class NotificationHandler:
    def __init__(
        self,
        session_factory: sessionmaker,
        sender: EmailSender,
        from_address: str,
    ) -> None:
        self.session_factory = session_factory
        self.sender = sender
        self.from_address = from_address
        self._dispatches: set[asyncio.Task] = set()

    async def on_event(self, event: OrderConfirmation | PaymentConfirmation) -> bool:
        """イベントを処理する。新規に保存した場合 True、重複なら False。"""
        logger.info("Consuming %s for order %s", event.event_type, event.order_reference)

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await commands.save_notification(session, event)
        except IntegrityError:
            logger.info(
                "Duplicate %s for order %s ignored",
                event.event_type,
                event.order_reference,
            )
            return False

        message = build_message(event, self.from_address)
        task = asyncio.create_task(self._dispatch(message, event.order_reference))
        self._dispatches.add(task)
        task.add_done_callback(self._dispatches.discard)
        return True

    async def _dispatch(self, message: EmailMessage, order_reference: str) -> None:
        try:
            await self.sender.send(message)
        except Exception:
            logger.exception(
                "Cannot send email to %s for order %s", message["To"], order_reference
            )
            return
        logger.info(
            "Email successfully sent to %s with subject %r", message["To"], message["Subject"]
        )

    async def drain(self) -> None:
        """送信中のメールがすべて終わるまで待つ (シャットダウン時)。"""
        if self._dispatches:
            await asyncio.gather(*list(self._dispatches))
