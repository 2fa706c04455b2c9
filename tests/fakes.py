"""In-memory fakes for testing.

Remote service clients, the Redis Streams commands the services use and the
SMTP sender are replaced here. Databases are real (SQLite via aiosqlite).
"""

from __future__ import annotations

import asyncio
import time
from decimal import Decimal
from email.message import EmailMessage

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from sqlalchemy import MetaData, insert
from sqlalchemy.pool import NullPool

from fulfillment.product.commands import PurchaseItem, ReservationEngine
from fulfillment.product.tables import products
from fulfillment.shared.context import CallContext
from fulfillment.shared.contracts import PaymentRequest, PurchaseLine
from fulfillment.shared.db import create_engine, create_schema, create_session_factory
from fulfillment.shared.errors import PaymentFailed
from fulfillment.shared.events import (
    CustomerSnapshot,
    OrderConfirmation,
    PaymentConfirmation,
    PaymentMethod,
    ProductSnapshot,
)


# ── Database ────────────────────────────────────


async def open_database(url: str, *metadatas: MetaData):
    """Create the schema and return (engine, session_factory).

    NullPool keeps no connection alive between asyncio.run() calls.
    """
    engine = create_engine(url, poolclass=NullPool)
    for metadata in metadatas:
        await create_schema(engine, metadata)
    return engine, create_session_factory(engine)


async def seed_products(session_factory, rows: list[dict]) -> None:
    async with session_factory() as session:
        async with session.begin():
            await session.execute(insert(products), rows)


# ── Redis Streams ───────────────────────────────


class _Group:
    def __init__(self, cursor: int) -> None:
        self.cursor = cursor
        # message id -> (consumer, delivered_at)
        self.pending: dict[str, tuple[str, float]] = {}


def _seq(message_id: str) -> int:
    return int(message_id.split("-")[0])


class FakeStreamRedis:
    """Just enough of XADD / XGROUP CREATE / XREADGROUP / XACK / XAUTOCLAIM."""

    def __init__(self) -> None:
        self.streams: dict[str, list[tuple[str, dict]]] = {}
        self.groups: dict[tuple[str, str], _Group] = {}
        self.fail_xadd = False
        # number of XGROUP CREATE calls to fail with a connection error
        self.fail_xgroup_create = 0
        self._next = 0

    async def xadd(self, name, fields, id="*", maxlen=None, approximate=True):
        if self.fail_xadd:
            raise RedisConnectionError("Connection refused")
        self._next += 1
        message_id = f"{self._next}-0"
        self.streams.setdefault(name, []).append((message_id, dict(fields)))
        return message_id

    async def xgroup_create(self, name, groupname, id="$", mkstream=False):
        if self.fail_xgroup_create:
            self.fail_xgroup_create -= 1
            raise RedisConnectionError("Error 111 connecting to localhost:6379. Connection refused.")
        if name not in self.streams:
            if not mkstream:
                raise ResponseError("ERR The XGROUP subcommand requires the key to exist")
            self.streams[name] = []
        if (name, groupname) in self.groups:
            raise ResponseError("BUSYGROUP Consumer Group name already exists")
        cursor = 0 if id == "0" else len(self.streams[name])
        self.groups[(name, groupname)] = _Group(cursor)
        return True

    async def xreadgroup(self, groupname, consumername, streams, count=None, block=None, noack=False):
        result = []
        for name in streams:
            group = self.groups[(name, groupname)]
            entries = self.streams[name][group.cursor:]
            if count:
                entries = entries[:count]
            group.cursor += len(entries)
            for message_id, _ in entries:
                group.pending[message_id] = (consumername, time.monotonic())
            if entries:
                result.append([name, [(mid, dict(fields)) for mid, fields in entries]])
        if not result and block:
            await asyncio.sleep(block / 1000)
        return result

    async def xpending(self, name, groupname):
        pending = sorted(self.groups[(name, groupname)].pending, key=_seq)
        return {
            "pending": len(pending),
            "min": pending[0] if pending else None,
            "max": pending[-1] if pending else None,
            "consumers": [],
        }

    async def xack(self, name, groupname, *ids):
        group = self.groups[(name, groupname)]
        return sum(1 for message_id in ids if group.pending.pop(message_id, None))

    async def xautoclaim(
        self, name, groupname, consumername, min_idle_time, start_id="0-0", count=None, justid=False
    ):
        group = self.groups[(name, groupname)]
        fields_by_id = dict(self.streams[name])
        now = time.monotonic()
        claimed = []
        for message_id in sorted(group.pending, key=_seq):
            _, delivered_at = group.pending[message_id]
            if (now - delivered_at) * 1000 >= min_idle_time:
                group.pending[message_id] = (consumername, now)
                claimed.append((message_id, dict(fields_by_id[message_id])))
            if count and len(claimed) >= count:
                break
        return ["0-0", claimed, []]

    async def aclose(self):
        pass

    def pending_count(self, name: str, groupname: str) -> int:
        return len(self.groups[(name, groupname)].pending)


# ── Remote service clients ──────────────────────


class FakeCustomerClient:

    def __init__(self, customers: list[CustomerSnapshot] | None = None) -> None:
        self._store = {c.id: c for c in customers or []}
        self.contexts: list[CallContext] = []

    async def find_customer(self, customer_id: str, ctx: CallContext) -> CustomerSnapshot | None:
        self.contexts.append(ctx)
        return self._store.get(customer_id)


class FakeProductClient:
    """Delegates to a real ReservationEngine on the test database."""

    def __init__(self, engine: ReservationEngine) -> None:
        self._engine = engine
        self.contexts: list[CallContext] = []

    async def purchase(self, items: list[PurchaseLine], ctx: CallContext) -> list[ProductSnapshot]:
        self.contexts.append(ctx)
        results = await self._engine.reserve(
            [PurchaseItem(product_id=i.product_id, quantity=i.quantity) for i in items]
        )
        return [
            ProductSnapshot(
                product_id=r.product_id,
                name=r.name,
                description=r.description,
                price=r.price,
                quantity=r.quantity,
            )
            for r in results
        ]


class FakePaymentClient:

    def __init__(self, reject: bool = False) -> None:
        self.reject = reject
        self.requests: list[PaymentRequest] = []
        self.contexts: list[CallContext] = []

    async def request_payment(self, payment: PaymentRequest, ctx: CallContext) -> int:
        self.contexts.append(ctx)
        if self.reject:
            raise PaymentFailed(
                "Payment was rejected: HTTP 400",
                order_id=payment.order_id,
                order_reference=payment.order_reference,
            )
        self.requests.append(payment)
        return len(self.requests)


# ── Email ───────────────────────────────────────


class InMemoryEmailSender:

    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> None:
        self.sent.append(message)


class FailingEmailSender:

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error or ConnectionRefusedError("SMTP server unreachable")
        self.attempts = 0

    async def send(self, message: EmailMessage) -> None:
        self.attempts += 1
        raise self.error


# ── Events ──────────────────────────────────────


def order_confirmation(customer: CustomerSnapshot, reference: str = "ORD-0001") -> OrderConfirmation:
    return OrderConfirmation(
        order_reference=reference,
        total_amount=Decimal("119.30"),
        payment_method=PaymentMethod.CREDIT_CARD,
        customer=customer,
        products=[
            ProductSnapshot(product_id=1, name="Keyboard", price=Decimal("49.90"), quantity=2),
            ProductSnapshot(product_id=2, name="Mouse", price=Decimal("19.50"), quantity=1),
        ],
    )


def payment_confirmation(reference: str = "ORD-0001", amount: str = "119.30") -> PaymentConfirmation:
    return PaymentConfirmation(
        order_reference=reference,
        amount=Decimal(amount),
        payment_method=PaymentMethod.CREDIT_CARD,
        customer_firstname="Ada",
        customer_lastname="Lovelace",
        customer_email="ada@example.com",
    )
