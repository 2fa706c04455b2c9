"""HTTP tests for the notification service."""

import asyncio

from fastapi.testclient import TestClient

from fulfillment.notification.main import create_app
from fulfillment.notification.tables import metadata
from fulfillment.shared.config import NotificationServiceConfig
from tests.fakes import open_database


def _config(database_url) -> NotificationServiceConfig:
    # nothing listens on port 1
    return NotificationServiceConfig(database_url=database_url, redis_url="redis://127.0.0.1:1/0")


def _prepare(database_url):
    async def prepare():
        engine, _ = await open_database(database_url, metadata)
        await engine.dispose()

    asyncio.run(prepare())


def test_health_is_degraded_while_redis_is_unreachable(database_url):
    _prepare(database_url)
    app = create_app(_config(database_url))

    with TestClient(app) as client:
        body = client.get("/health").json()
        task = app.state.subscriber_task

    assert body["status"] == "degraded"
    assert body["subscriber"] == "connecting"
    assert task.done()


def test_notifications_readable_without_redis(database_url):
    _prepare(database_url)
    app = create_app(_config(database_url))

    with TestClient(app) as client:
        resp = client.get("/api/v1/notifications", params={"type": "ORDER_CONFIRMATION"})

    assert resp.status_code == 200
    assert resp.json() == []
