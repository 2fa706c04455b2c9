"""
Payment Service — FastAPI エントリーポイント

Order Service からの支払い依頼を受け付ける。
決済ゲートウェイとの連携はこのサービスの範囲外。
"""

from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI, Request

from ..shared.config import PaymentServiceConfig
from ..shared.contracts import PaymentRequest
from ..shared.db import create_engine, create_schema, create_session_factory
from ..shared.errors import install_error_handlers
from ..shared.logging import configure_logging
from ..shared.stream import EventPublisher
from . import commands
from .tables import metadata


def create_app(config: PaymentServiceConfig | None = None) -> FastAPI:
    config = config or PaymentServiceConfig.from_env()
    configure_logging(config.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = create_engine(config.database_url)
        if config.create_schema:
            await create_schema(engine, metadata)
        redis = aioredis.from_url(config.redis_url, decode_responses=True)
        app.state.session_factory = create_session_factory(engine)
        app.state.publisher = EventPublisher(redis, config.streams)
        yield
        await redis.aclose()
        await engine.dispose()

    app = FastAPI(title="Payment Service", lifespan=lifespan)
    install_error_handlers(app)

    @app.post("/api/v1/payments")
    async def cmd_create_payment(request: Request, req: PaymentRequest):
        async with request.app.state.session_factory() as session:
            payment_id = await commands.create_payment(session, request.app.state.publisher, req)
            return {"payment_id": payment_id}

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "payment-service"}

    return app


app = create_app()
