"""
Notification Service — FastAPI エントリーポイント

起動時に Redis Streams のサブスクライバーをバックグラウンドタスクとして開始し、
受信した注文確認・支払い完了イベントを保存してメールで通知する。

┌───────────────┐  order_events    ┌──────────────────────┐   SMTP
│ Order Service │ ──┐              │                      │ ──────▶ 顧客
└───────────────┘   ├─ Redis ────▶ │ Notification Service │
┌───────────────┐   │  Streams     │                      │
│Payment Service│ ──┘              └──────────┬───────────┘
└───────────────┘  payment_events             ▼
                                        Notification DB
"""

import asyncio
import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI, Request

from ..shared.config import NotificationServiceConfig
from ..shared.db import create_engine, create_schema, create_session_factory
from ..shared.errors import install_error_handlers
from ..shared.logging import configure_logging
from . import queries
from .commands import NotificationType
from .handlers import NotificationHandler
from .mail import SmtpEmailSender
from .subscriber import StreamSubscriber
from .tables import metadata

logger = logging.getLogger(__name__)


def create_app(config: NotificationServiceConfig | None = None) -> FastAPI:
    config = config or NotificationServiceConfig.from_env()
    configure_logging(config.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """起動時にサブスクライバーを開始し、終了時に止める。"""
        engine = create_engine(config.database_url)
        if config.create_schema:
            await create_schema(engine, metadata)
        redis = aioredis.from_url(config.redis_url, decode_responses=True)

        app.state.session_factory = create_session_factory(engine)
        handler = NotificationHandler(
            app.state.session_factory,
            SmtpEmailSender(config.smtp),
            from_address=config.smtp.sender,
        )
        subscriber = StreamSubscriber(redis, config, handler)

        shutdown_event = asyncio.Event()
        subscriber_task = asyncio.create_task(subscriber.run(shutdown_event))
        app.state.subscriber = subscriber
        app.state.subscriber_task = subscriber_task
        try:
            yield
        finally:
            shutdown_event.set()
            subscriber_task.cancel()
            try:
                await subscriber_task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Notification subscriber stopped with an error")
            await handler.drain()
            await redis.aclose()
            await engine.dispose()

    app = FastAPI(title="Notification Service", lifespan=lifespan)
    install_error_handlers(app)

    @app.get("/api/v1/notifications")
    async def query_list_notifications(request: Request, type: NotificationType | None = None):
        async with request.app.state.session_factory() as session:
            return await queries.list_notifications(session, type.value if type else None)

    @app.get("/health")
    async def health(request: Request):
        """サブスクライバーが停止・未接続なら degraded を返す。"""
        if request.app.state.subscriber_task.done():
            state = "stopped"
        elif request.app.state.subscriber.ready:
            state = "consuming"
        else:
            state = "connecting"
        return {
            "status": "ok" if state == "consuming" else "degraded",
            "service": "notification-service",
            "subscriber": state,
        }

    return app


app = create_app()
