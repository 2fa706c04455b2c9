"""HTTP tests for the product service."""

import asyncio
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from fulfillment.product.main import create_app
from fulfillment.product.tables import metadata
from fulfillment.shared.config import ProductServiceConfig
from tests.fakes import open_database, seed_products


@pytest.fixture
def client(database_url):
    async def prepare():
        engine, session_factory = await open_database(database_url, metadata)
        await seed_products(
            session_factory,
            [
                {"id": 1, "name": "Keyboard", "available_quantity": 5, "price": Decimal("49.90")},
                {"id": 2, "name": "Mouse", "available_quantity": 1, "price": Decimal("19.50")},
            ],
        )
        await engine.dispose()

    asyncio.run(prepare())
    app = create_app(ProductServiceConfig(database_url=database_url))
    with TestClient(app) as client:
        yield client


def test_purchase_returns_snapshots(client):
    resp = client.post(
        "/api/v1/products/purchase",
        json=[{"product_id": 1, "quantity": 2}, {"product_id": 2, "quantity": 1}],
    )

    assert resp.status_code == 200
    body = resp.json()
    assert [(p["product_id"], p["quantity"], p["price"]) for p in body] == [
        (1, 2, "49.90"),
        (2, 1, "19.50"),
    ]
    assert client.get("/api/v1/products/1").json()["available_quantity"] == 3


def test_insufficient_stock_is_409_naming_the_product(client):
    resp = client.post(
        "/api/v1/products/purchase",
        json=[{"product_id": 1, "quantity": 2}, {"product_id": 2, "quantity": 2}],
    )

    assert resp.status_code == 409
    assert resp.json()["error"] == "InsufficientStock"
    assert resp.json()["product_id"] == 2
    assert client.get("/api/v1/products/1").json()["available_quantity"] == 5


def test_unknown_product_is_404(client):
    resp = client.post("/api/v1/products/purchase", json=[{"product_id": 42, "quantity": 1}])

    assert resp.status_code == 404
    assert resp.json()["product_ids"] == [42]


def test_non_positive_quantity_is_422(client):
    resp = client.post("/api/v1/products/purchase", json=[{"product_id": 1, "quantity": 0}])

    assert resp.status_code == 422


def test_get_missing_product(client):
    assert client.get("/api/v1/products/999").status_code == 404
