"""
Notification Service — メール送信

イベントの種類に応じて送信メッセージを組み立て、SMTP で送る。
HTML テンプレートのレンダリングは範囲外なので本文はプレーンテキスト。

  PaymentConfirmation → 支払い完了メール (金額・注文番号)
  OrderConfirmation   → 注文確認メール   (合計金額・注文番号・商品一覧)
"""

import logging
from email.message import EmailMessage
from typing import Protocol

import aiosmtplib

from ..shared.config import SmtpConfig
from ..shared.events import OrderConfirmation, PaymentConfirmation

logger = logging.getLogger(__name__)

PAYMENT_CONFIRMATION_SUBJECT = "Payment successfully processed"
ORDER_CONFIRMATION_SUBJECT = "Order confirmation"


class EmailSender(Protocol):
    async def send(self, message: EmailMessage) -> None: ...


class SmtpEmailSender:
    """aiosmtplib で 1 通ずつ送信する。"""

    def __init__(self, config: SmtpConfig) -> None:
        self.config = config

    async def send(self, message: EmailMessage) -> None:
        await aiosmtplib.send(
            message,
            hostname=self.config.hostname,
            port=self.config.port,
            username=self.config.username,
            password=self.config.password,
            use_tls=self.config.use_tls,
            start_tls=self.config.start_tls and not self.config.use_tls,
            timeout=self.config.timeout,
        )


def _new_message(sender: str, to: str, subject: str, body: str) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)
    return message


def build_payment_email(event: PaymentConfirmation, sender: str) -> EmailMessage:
    body = (
        f"Hello {event.display_name},\n\n"
        f"Your payment of {event.amount} ({event.payment_method.value}) "
        f"for order {event.order_reference} was processed successfully.\n"
    )
    return _new_message(sender, event.customer_email, PAYMENT_CONFIRMATION_SUBJECT, body)


def build_order_email(event: OrderConfirmation, sender: str) -> EmailMessage:
    lines = "\n".join(
        f"  - {p.name} x {p.quantity} @ {p.price}" for p in event.products
    )
    body = (
        f"Hello {event.customer.display_name},\n\n"
        f"Thank you for your order {event.order_reference}.\n\n"
        f"{lines}\n\n"
        f"Total: {event.total_amount} ({event.payment_method.value})\n"
    )
    return _new_message(sender, event.customer.email, ORDER_CONFIRMATION_SUBJECT, body)


def build_message(event: OrderConfirmation | PaymentConfirmation, sender: str) -> EmailMessage:
    if isinstance(event, OrderConfirmation):
        return build_order_email(event, sender)
    return build_payment_email(event, sender)
