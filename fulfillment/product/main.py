"""
Product Service — FastAPI エントリーポイント

商品在庫の引き当て(purchase)と参照を提供する。
商品・カテゴリの登録 / 更新は別システムの責務でここでは扱わない。
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from ..shared.config import ProductServiceConfig
from ..shared.db import create_engine, create_schema, create_session_factory
from ..shared.errors import install_error_handlers
from ..shared.logging import configure_logging
from . import queries
from .commands import PurchaseItem, ReservationEngine
from .tables import metadata


class PurchaseRequest(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)


def create_app(config: ProductServiceConfig | None = None) -> FastAPI:
    config = config or ProductServiceConfig.from_env()
    configure_logging(config.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = create_engine(config.database_url)
        if config.create_schema:
            await create_schema(engine, metadata)
        app.state.session_factory = create_session_factory(engine)
        app.state.reservations = ReservationEngine(
            app.state.session_factory,
            max_attempts=config.reservation_max_attempts,
        )
        yield
        await engine.dispose()

    app = FastAPI(title="Product Service", lifespan=lifespan)
    install_error_handlers(app)

    # ── Command Endpoints ────────────────────────

    @app.post("/api/v1/products/purchase")
    async def cmd_purchase(request: Request, items: list[PurchaseRequest]):
        """在庫引き当てコマンド (全件成功 or 全件失敗)"""
        results = await request.app.state.reservations.reserve(
            [PurchaseItem(product_id=i.product_id, quantity=i.quantity) for i in items]
        )
        return [r.to_dict() for r in results]

    # ── Query Endpoints ──────────────────────────

    @app.get("/api/v1/products")
    async def query_list_products(request: Request):
        async with request.app.state.session_factory() as session:
            return await queries.list_products(session)

    @app.get("/api/v1/products/{product_id}")
    async def query_get_product(request: Request, product_id: int):
        async with request.app.state.session_factory() as session:
            product = await queries.get_product(session, product_id)
            if not product:
                raise HTTPException(404, "Product not found")
            return product

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "product-service"}

    return app


app = create_app()
