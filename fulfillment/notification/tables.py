"""Notification Service — テーブル定義"""

from sqlalchemy import JSON, Column, DateTime, Integer, MetaData, String, Table, UniqueConstraint

metadata = MetaData()

# (type, order_reference) で一意 → 再配送された同一イベントは 2 件目を保存しない
notifications = Table(
    "notification",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("type", String(32), nullable=False),
    Column("order_reference", String(64), nullable=False),
    Column("received_at", DateTime(timezone=True), nullable=False),
    Column("payload", JSON, nullable=False),
    UniqueConstraint("type", "order_reference", name="uq_notification_type_reference"),
)
