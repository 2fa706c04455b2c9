"""Product Service — テーブル定義"""

from sqlalchemy import CheckConstraint, Column, Integer, MetaData, Numeric, String, Table, Text

metadata = MetaData()

products = Table(
    "products",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("available_quantity", Integer, nullable=False, default=0),
    Column("price", Numeric(12, 2), nullable=False),
    CheckConstraint("available_quantity >= 0", name="ck_products_available_quantity"),
)
