"""Payment Service — テーブル定義"""

from sqlalchemy import Column, DateTime, Integer, MetaData, Numeric, String, Table

metadata = MetaData()

payments = Table(
    "payment",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("order_id", Integer, nullable=False),
    Column("order_reference", String(64), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("payment_method", String(32), nullable=False),
    Column("customer_id", String(64), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)
