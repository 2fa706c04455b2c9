"""Order Service — テーブル定義"""

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
)

metadata = MetaData()

orders = Table(
    "customer_order",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("reference", String(64), nullable=False, unique=True),
    Column("total_amount", Numeric(12, 2), nullable=False),
    Column("payment_method", String(32), nullable=False),
    Column("customer_id", String(64), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("last_modified_at", DateTime(timezone=True)),
)

order_lines = Table(
    "order_line",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("order_id", Integer, ForeignKey("customer_order.id"), nullable=False, index=True),
    Column("product_id", Integer, nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", Numeric(12, 2), nullable=False),
    CheckConstraint("quantity > 0", name="ck_order_line_quantity"),
)

# 注文ワークフローの進行状況 (失敗時にどのステップで止まったかを追跡する)
order_workflows = Table(
    "order_workflow",
    metadata,
    Column("reference", String(64), primary_key=True),
    Column("status", String(32), nullable=False),
    Column("customer_id", String(64), nullable=False),
    Column("order_id", Integer),
    Column("requested_amount", Numeric(12, 2)),
    Column("error", Text),
    Column("steps", JSON, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)
