from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    func,
    text,
)

metadata = MetaData()

MONEY = Numeric(12, 2)
QUANTITY = Numeric(12, 3)


def _timestamps() -> list[Column]:
    return [
        Column("created_at", DateTime, nullable=False, server_default=func.current_timestamp()),
        Column("updated_at", DateTime, nullable=True),
    ]


users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(120), nullable=False),
    Column("email", String(160), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("role", String(20), nullable=False, server_default="empleado"),
    Column("phone", String(40)),
    Column("active", Boolean, nullable=False, server_default="1"),
    Column("last_login_at", DateTime),
    *_timestamps(),
)

categories = Table(
    "categories",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(120), nullable=False, unique=True),
    Column("description", Text),
    Column("color", String(20), nullable=False, server_default="#3B82F6"),
    Column("icon", String(20), nullable=False, server_default="📦"),
    Column("active", Boolean, nullable=False, server_default="1"),
    *_timestamps(),
)

products = Table(
    "products",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(200), nullable=False, index=True),
    Column("description", Text),
    Column("price", MONEY, nullable=False),
    Column("price_level_2", MONEY),
    Column("price_level_3", MONEY),
    Column("cost", MONEY, nullable=False, server_default="0"),
    Column("stock", QUANTITY, nullable=False, server_default="0"),
    Column("min_stock", QUANTITY, nullable=False, server_default="10"),
    Column("unit_type", String(20), nullable=False, server_default="unidades"),
    Column("category_id", Integer, ForeignKey("categories.id")),
    Column("barcode", String(64), unique=True),
    Column("image", String(500)),
    Column("active", Boolean, nullable=False, server_default="1"),
    *_timestamps(),
)

stock_movements = Table(
    "stock_movements",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("product_id", Integer, ForeignKey("products.id"), nullable=False, index=True),
    Column("type", String(20), nullable=False),
    Column("quantity", QUANTITY, nullable=False),
    Column("previous_stock", QUANTITY, nullable=False),
    Column("new_stock", QUANTITY, nullable=False),
    Column("reason", String(255), nullable=False),
    Column("user_id", Integer, ForeignKey("users.id")),
    Column("reference_type", String(20)),
    Column("reference_id", Integer),
    Column("created_at", DateTime, nullable=False, server_default=func.current_timestamp()),
)

customers = Table(
    "customers",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(160), nullable=False, index=True),
    Column("email", String(160)),
    Column("phone", String(40)),
    Column("address", String(255)),
    Column("document_number", String(40)),
    Column("credit_limit", MONEY, nullable=False, server_default="0"),
    Column("current_balance", MONEY, nullable=False, server_default="0"),
    Column("notes", Text),
    Column("active", Boolean, nullable=False, server_default="1"),
    *_timestamps(),
)

customer_transactions = Table(
    "customer_transactions",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("customer_id", Integer, ForeignKey("customers.id"), nullable=False, index=True),
    Column("type", String(20), nullable=False),
    Column("amount", MONEY, nullable=False),
    Column("previous_balance", MONEY, nullable=False),
    Column("new_balance", MONEY, nullable=False),
    Column("description", String(255)),
    Column("reference_type", String(20)),
    Column("reference_id", Integer),
    Column("user_id", Integer, ForeignKey("users.id")),
    Column("created_at", DateTime, nullable=False, server_default=func.current_timestamp()),
)

sales = Table(
    "sales",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("total", MONEY, nullable=False),
    Column("customer_id", Integer, ForeignKey("customers.id")),
    Column("user_id", Integer, ForeignKey("users.id")),
    Column("payment_method", String(30), nullable=False),
    Column("status", String(20), nullable=False, server_default="completed"),
    Column("notes", Text),
    Column("cancelled_at", DateTime),
    Column("cancelled_by", Integer, ForeignKey("users.id")),
    Column("cancel_reason", String(255)),
    *_timestamps(),
)

sale_items = Table(
    "sale_items",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("sale_id", Integer, ForeignKey("sales.id"), nullable=False, index=True),
    Column("product_id", Integer, ForeignKey("products.id"), nullable=False),
    Column("quantity", QUANTITY, nullable=False),
    Column("unit_price", MONEY, nullable=False),
    Column("subtotal", MONEY, nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.current_timestamp()),
)

sale_payments = Table(
    "sale_payments",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("sale_id", Integer, ForeignKey("sales.id"), nullable=False, index=True),
    Column("method", String(30), nullable=False),
    Column("amount", MONEY, nullable=False),
)

deliveries = Table(
    "deliveries",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("total", MONEY, nullable=False),
    Column("customer_id", Integer, ForeignKey("customers.id"), nullable=False),
    Column("driver_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("user_id", Integer, ForeignKey("users.id")),
    Column("payment_method", String(30), nullable=False),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("notes", Text),
    *_timestamps(),
)

delivery_items = Table(
    "delivery_items",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("delivery_id", Integer, ForeignKey("deliveries.id"), nullable=False, index=True),
    Column("product_id", Integer, ForeignKey("products.id"), nullable=False),
    Column("quantity", QUANTITY, nullable=False),
    Column("unit_price", MONEY, nullable=False),
    Column("subtotal", MONEY, nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.current_timestamp()),
)

delivery_payments = Table(
    "delivery_payments",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("delivery_id", Integer, ForeignKey("deliveries.id"), nullable=False, index=True),
    Column("method", String(30), nullable=False),
    Column("amount", MONEY, nullable=False),
)

delivery_locations = Table(
    "delivery_locations",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("delivery_id", Integer, ForeignKey("deliveries.id"), nullable=False, index=True),
    Column("latitude", Numeric(10, 7), nullable=False),
    Column("longitude", Numeric(10, 7), nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.current_timestamp()),
)

delivery_status_history = Table(
    "delivery_status_history",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("delivery_id", Integer, ForeignKey("deliveries.id"), nullable=False, index=True),
    Column("previous_status", String(20)),
    Column("new_status", String(20), nullable=False),
    Column("user_id", Integer, ForeignKey("users.id")),
    Column("notes", Text),
    Column("created_at", DateTime, nullable=False, server_default=func.current_timestamp()),
)

cash_sessions = Table(
    "cash_sessions",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("status", String(10), nullable=False, server_default="open"),
    Column("opening_amount", MONEY, nullable=False),
    Column("closing_amount", MONEY),
    Column("expected_amount", MONEY),
    Column("difference", MONEY),
    Column("opened_by", Integer, ForeignKey("users.id")),
    Column("closed_by", Integer, ForeignKey("users.id")),
    Column("opening_notes", Text),
    Column("closing_notes", Text),
    Column("opened_at", DateTime, nullable=False, server_default=func.current_timestamp()),
    Column("closed_at", DateTime),
)

# at most one open drawer
Index(
    "uq_cash_sessions_open",
    cash_sessions.c.status,
    unique=True,
    postgresql_where=text("status = 'open'"),
    sqlite_where=text("status = 'open'"),
)

cash_movements = Table(
    "cash_movements",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("cash_session_id", Integer, ForeignKey("cash_sessions.id"), nullable=False, index=True),
    Column("type", String(20), nullable=False),
    Column("amount", MONEY, nullable=False),
    Column("description", String(255)),
    Column("reference_type", String(20)),
    Column("reference_id", Integer),
    Column("user_id", Integer, ForeignKey("users.id")),
    Column("created_at", DateTime, nullable=False, server_default=func.current_timestamp()),
)

cash_settings = Table(
    "cash_settings",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("min_opening_amount", MONEY, nullable=False, server_default="0"),
    Column("require_open_session", Boolean, nullable=False, server_default="0"),
    Column("updated_by", Integer, ForeignKey("users.id")),
    Column("updated_at", DateTime),
)
