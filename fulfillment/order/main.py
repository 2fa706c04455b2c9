"""
Order Service — FastAPI エントリーポイント

注文の受付 (オーケストレーター) と参照 API を提供する。

┌────────┐  POST /orders  ┌───────────────┐ ──▶ Customer Service
│ Client │ ─────────────▶ │ Order Service │ ──▶ Product Service
└────────┘                │ (Orchestrator)│ ──▶ Payment Service
                          └──────┬────────┘
                                 │ XADD order_events
                                 ▼
                          Redis Streams ──▶ Notification Service
"""

from contextlib import asynccontextmanager

import httpx
import redis.asyncio as aioredis
from fastapi import FastAPI, HTTPException, Request

from ..shared.config import OrderServiceConfig
from ..shared.context import CallContext
from ..shared.db import create_engine, create_schema, create_session_factory
from ..shared.errors import OrderNotFound, install_error_handlers
from ..shared.logging import configure_logging
from ..shared.stream import EventPublisher
from . import queries
from .clients import CustomerClient, PaymentClient, ProductClient
from .orchestrator import OrderOrchestrator, OrderRequest
from .tables import metadata


def create_app(config: OrderServiceConfig | None = None) -> FastAPI:
    config = config or OrderServiceConfig.from_env()
    configure_logging(config.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = create_engine(config.database_url)
        if config.create_schema:
            await create_schema(engine, metadata)
        redis = aioredis.from_url(config.redis_url, decode_responses=True)
        http = httpx.AsyncClient(timeout=config.http_timeout)

        app.state.session_factory = create_session_factory(engine)
        app.state.orchestrator = OrderOrchestrator(
            customers=CustomerClient(http, config.customer_service_url),
            products=ProductClient(http, config.product_service_url),
            payments=PaymentClient(http, config.payment_service_url),
            publisher=EventPublisher(redis, config.streams),
            session_factory=app.state.session_factory,
        )
        yield
        await http.aclose()
        await redis.aclose()
        await engine.dispose()

    app = FastAPI(title="Order Service", lifespan=lifespan)
    install_error_handlers(app)

    # ── Command Endpoints ────────────────────────

    @app.post("/api/v1/orders")
    async def cmd_create_order(request: Request, req: OrderRequest):
        """注文作成 (ワークフロー全体を同期的に実行する)"""
        order_id = await request.app.state.orchestrator.create_order(
            req, CallContext.from_request(request)
        )
        return {"order_id": order_id}

    # ── Query Endpoints ──────────────────────────

    @app.get("/api/v1/orders")
    async def query_list_orders(request: Request):
        async with request.app.state.session_factory() as session:
            return await queries.list_orders(session)

    @app.get("/api/v1/orders/{order_id}")
    async def query_get_order(request: Request, order_id: int):
        async with request.app.state.session_factory() as session:
            order = await queries.get_order(session, order_id)
            if not order:
                raise OrderNotFound(order_id)
            return order

    @app.get("/api/v1/workflows/{reference}")
    async def query_get_workflow(request: Request, reference: str):
        """注文ワークフローの進行状況 (どのステップで止まったか)"""
        async with request.app.state.session_factory() as session:
            workflow = await queries.get_workflow(session, reference)
            if not workflow:
                raise HTTPException(404, "Workflow not found")
            return workflow

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "order-service"}

    return app


app = create_app()
