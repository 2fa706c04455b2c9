"""
Product Service — 在庫引き当てエンジン (Reservation Engine)

複数商品の在庫をまとめて引き当てる。全件成功するか、1 件も減らさないか
(all-or-nothing)のどちらかになる。

  1. 要求された商品を 1 回のクエリでまとめて取得する
     (見つからない ID があれば ProductNotFound、在庫は一切変更しない)
  2. 要求と商品を「商品 ID 昇順・同 ID は入力順」で突き合わせる
     → 検証と更新の順序が取得順に依存せず再現可能になる
  3. 要求数 > 在庫数 なら InsufficientStock(商品 ID)
     それまでに減らした在庫はトランザクションのロールバックで元に戻る
  4. 在庫を減らして保存する
  5. 入力と同じ順序で引き当て結果を返す

同時実行制御:
  - PostgreSQL では SELECT ... FOR UPDATE で対象行を ID 順にロックする
    (ID 順なので複数バッチ間でデッドロックしない)
  - 更新は必ず条件付き (available_quantity >= :qty) で行う
    → ロックの無い DB でも在庫がマイナスになることはない
  - ロック競合でドライバが OperationalError を返した場合は
    トランザクション全体を上限回数まで再試行し、尽きたら ReservationConflict
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from ..shared.errors import InsufficientStock, InvalidRequest, ProductNotFound, ReservationConflict
from .tables import products

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurchaseItem:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class PurchaseResult:
    product_id: int
    name: str
    description: str | None
    price: Decimal
    quantity: int

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "description": self.description,
            "price": str(self.price),
            "quantity": self.quantity,
        }


async def reserve_products(
    session: AsyncSession,
    items: Sequence[PurchaseItem],
) -> list[PurchaseResult]:
    """
    在庫引き当て本体。

    呼び出し側のトランザクション内で実行すること。
    例外が出た場合に途中までの更新を破棄するのはトランザクションの責務。
    """
    if not items:
        raise InvalidRequest("At least one product must be requested")
    for item in items:
        if item.quantity <= 0:
            raise InvalidRequest(
                f"Quantity must be positive for product {item.product_id}",
                product_id=item.product_id,
            )

    # ── 1. まとめて取得 ─────────────────────────
    requested_ids = sorted({item.product_id for item in items})
    result = await session.execute(
        select(products)
        .where(products.c.id.in_(requested_ids))
        .order_by(products.c.id)
        .with_for_update()
    )
    stored = {row.id: row for row in result.fetchall()}
    if len(stored) < len(requested_ids):
        missing = [pid for pid in requested_ids if pid not in stored]
        raise ProductNotFound(missing)

    # ── 2. 決定的な順序で突き合わせ ─────────────
    ordered = sorted(enumerate(items), key=lambda pair: (pair[1].product_id, pair[0]))

    # 同じ商品が複数回要求されても正しく減るよう、残数を追跡する
    available = {pid: row.available_quantity for pid, row in stored.items()}
    purchased: dict[int, PurchaseResult] = {}

    for index, item in ordered:
        product = stored[item.product_id]

        # ── 3. 在庫チェック ─────────────────────
        if available[item.product_id] < item.quantity:
            raise InsufficientStock(
                item.product_id,
                requested=item.quantity,
                available=available[item.product_id],
            )

        # ── 4. 条件付き更新 ─────────────────────
        updated = await session.execute(
            update(products)
            .where(
                products.c.id == item.product_id,
                products.c.available_quantity >= item.quantity,
            )
            .values(available_quantity=products.c.available_quantity - item.quantity)
        )
        if updated.rowcount != 1:
            # 別トランザクションが先に在庫を減らした
            raise InsufficientStock(item.product_id, requested=item.quantity)
        available[item.product_id] -= item.quantity

        purchased[index] = PurchaseResult(
            product_id=product.id,
            name=product.name,
            description=product.description,
            price=Decimal(product.price),
            quantity=item.quantity,
        )

    # ── 5. 入力順で返す ─────────────────────────
    return [purchased[i] for i in range(len(items))]


class ReservationEngine:
    """reserve_products をトランザクション境界と再試行で包む。"""

    def __init__(
        self,
        session_factory: sessionmaker,
        max_attempts: int = 3,
        retry_delay: float = 0.05,
    ) -> None:
        self.session_factory = session_factory
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay

    async def reserve(self, items: Sequence[PurchaseItem]) -> list[PurchaseResult]:
        last_error: OperationalError | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        results = await reserve_products(session, items)
            except OperationalError as e:
                last_error = e
                logger.warning(
                    "Reservation attempt %d/%d failed on a lock conflict: %s",
                    attempt,
                    self.max_attempts,
                    e.orig,
                )
                await asyncio.sleep(self.retry_delay * attempt)
                continue

            logger.info(
                "Reserved %s",
                ", ".join(f"{r.product_id}x{r.quantity}" for r in results),
            )
            return results

        raise ReservationConflict(
            f"Reservation could not be completed after {self.max_attempts} attempts",
            product_ids=sorted({item.product_id for item in items}),
        ) from last_error
