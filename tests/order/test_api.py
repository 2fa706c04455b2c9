"""HTTP tests for the order service with fake remote services."""

import asyncio
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from fulfillment.order.main import create_app
from fulfillment.order.orchestrator import OrderOrchestrator
from fulfillment.order.tables import metadata as order_metadata
from fulfillment.product.commands import ReservationEngine
from fulfillment.product.tables import metadata as product_metadata
from fulfillment.shared.config import OrderServiceConfig, StreamConfig
from fulfillment.shared.stream import EventPublisher
from tests.fakes import (
    FakeCustomerClient,
    FakePaymentClient,
    FakeProductClient,
    FakeStreamRedis,
    open_database,
    seed_products,
)


@pytest.fixture
def client(database_url, customer):
    async def prepare():
        engine, session_factory = await open_database(database_url, product_metadata, order_metadata)
        await seed_products(
            session_factory,
            [{"id": 1, "name": "Keyboard", "available_quantity": 5, "price": Decimal("49.90")}],
        )
        await engine.dispose()

    asyncio.run(prepare())
    app = create_app(
        OrderServiceConfig(
            customer_service_url="http://customer",
            product_service_url="http://product",
            payment_service_url="http://payment",
            database_url=database_url,
        )
    )
    with TestClient(app) as client:
        session_factory = app.state.session_factory
        customers = FakeCustomerClient([customer])
        app.state.orchestrator = OrderOrchestrator(
            customers=customers,
            products=FakeProductClient(ReservationEngine(session_factory, retry_delay=0)),
            payments=FakePaymentClient(),
            publisher=EventPublisher(FakeStreamRedis(), StreamConfig()),
            session_factory=session_factory,
        )
        client.customers = customers
        yield client


def _order(**overrides):
    body = {
        "reference": "ORD-0001",
        "customer_id": "cust-1",
        "payment_method": "PAYPAL",
        "products": [{"product_id": 1, "quantity": 2}],
    }
    body.update(overrides)
    return body


def test_create_order_then_read_it_back(client):
    resp = client.post(
        "/api/v1/orders",
        json=_order(),
        headers={"Authorization": "Bearer t", "X-Correlation-ID": "corr-9"},
    )

    assert resp.status_code == 200
    order_id = resp.json()["order_id"]

    order = client.get(f"/api/v1/orders/{order_id}").json()
    assert order["reference"] == "ORD-0001"
    assert order["total_amount"] == "99.80"
    assert [line["quantity"] for line in order["lines"]] == [2]

    assert client.get("/api/v1/workflows/ORD-0001").json()["status"] == "CONFIRMED"
    assert [o["id"] for o in client.get("/api/v1/orders").json()] == [order_id]

    ctx = client.customers.contexts[0]
    assert (ctx.authorization, ctx.correlation_id) == ("Bearer t", "corr-9")


def test_unknown_customer_is_404_with_customer_id(client):
    resp = client.post("/api/v1/orders", json=_order(customer_id="nobody"))

    assert resp.status_code == 404
    assert resp.json()["error"] == "CustomerNotFound"
    assert resp.json()["customer_id"] == "nobody"


def test_insufficient_stock_is_409(client):
    resp = client.post("/api/v1/orders", json=_order(products=[{"product_id": 1, "quantity": 6}]))

    assert resp.status_code == 409
    assert resp.json()["product_id"] == 1


def test_invalid_body_is_422(client):
    assert client.post("/api/v1/orders", json=_order(products=[])).status_code == 422
    assert client.post("/api/v1/orders", json=_order(payment_method="GOLD")).status_code == 422


def test_missing_order_is_404(client):
    resp = client.get("/api/v1/orders/999")

    assert resp.status_code == 404
    assert resp.json()["error"] == "OrderNotFound"
