import logging
from decimal import Decimal

from sqlalchemy import func, insert, text, update
from sqlalchemy.orm import Session

from pos_api.core.errors import ConflictError, NotFoundError, ValidationError
from pos_api.db.listing import FilterSet, Page, month_start, paginate
from pos_api.db.schema import products
from pos_api.db.session import transaction
from pos_api.schemas.inventory import MovementQuery, ProductCreate, ProductQuery, ProductUpdate
from pos_api.services import stock
from pos_api.services.stock import KILOGRAMS, UNIT_TYPES, UNITS, is_integral

logger = logging.getLogger(__name__)

PRODUCT_COLUMNS = """
      p.id,
      p.name,
      p.description,
      p.price,
      p.price_level_2,
      p.price_level_3,
      p.cost,
      p.stock,
      p.min_stock,
      p.unit_type,
      p.category_id,
      p.barcode,
      p.image,
      p.active,
      p.created_at,
      p.updated_at,
      c.name AS category_name,
      c.color AS category_color,
      c.icon AS category_icon
"""

PRODUCT_SELECT = f"""
    SELECT {PRODUCT_COLUMNS}
    FROM products p
    LEFT JOIN categories c ON c.id = p.category_id
"""

STOCK_LEVELS = {
    "critical": "p.stock = 0",
    "low": "p.stock > 0 AND p.stock <= p.min_stock",
    "normal": "p.stock > p.min_stock AND p.stock <= (p.min_stock * 2)",
    "high": "p.stock > (p.min_stock * 2)",
}

ALERT_LEVEL = """
    CASE
      WHEN p.stock = 0 THEN 'critical'
      WHEN p.stock <= p.min_stock THEN 'critical'
      WHEN p.stock <= (p.min_stock * 1.5) THEN 'warning'
      ELSE 'normal'
    END
"""

ALERT_SELECT = f"""
    SELECT
      p.id,
      p.name,
      p.stock,
      p.min_stock,
      p.unit_type,
      c.name AS category_name,
      {ALERT_LEVEL} AS level
    FROM products p
    LEFT JOIN categories c ON c.id = p.category_id
    WHERE p.active = :yes AND p.stock <= p.min_stock
    ORDER BY CASE WHEN p.stock = 0 THEN 1 ELSE 2 END, p.stock ASC, p.name ASC
"""


def product_filters(query: ProductQuery) -> FilterSet:
    filters = FilterSet().add_active("p.active", query.active)
    if query.category:
        filters.add("p.category_id = :category_id", category_id=query.category)
    filters.add_search(["p.name", "p.description", "p.barcode"], query.search)
    if query.stock_level in STOCK_LEVELS:
        filters.add(STOCK_LEVELS[query.stock_level])
    if query.min_stock is not None:
        filters.add("p.stock >= :min_stock", min_stock=query.min_stock)
    if query.max_stock is not None:
        filters.add("p.stock <= :max_stock", max_stock=query.max_stock)
    if query.min_price is not None:
        filters.add("p.price >= :min_price", min_price=query.min_price)
    if query.max_price is not None:
        filters.add("p.price <= :max_price", max_price=query.max_price)
    return filters


def list_products(db: Session, query: ProductQuery) -> dict:
    page = Page.clamp(query.page, query.limit)
    rows, pagination = paginate(
        db,
        PRODUCT_SELECT + " WHERE {where}",
        "SELECT COUNT(*) FROM products p WHERE {where}",
        product_filters(query),
        page,
        order_by="p.name ASC, p.id ASC",
    )
    return {"products": rows, "pagination": pagination}


def top_selling(db: Session, limit: int | str | None = 10) -> dict:
    try:
        limit_num = min(50, max(5, int(limit)))
    except (TypeError, ValueError):
        limit_num = 10

    rows = db.execute(
        text(
            f"""
            SELECT {PRODUCT_COLUMNS},
              COALESCE(sold.total_sold, 0) AS total_sold,
              COALESCE(sold.sales_count, 0) AS sales_count
            FROM products p
            LEFT JOIN categories c ON c.id = p.category_id
            LEFT JOIN (
              SELECT si.product_id, SUM(si.quantity) AS total_sold, COUNT(DISTINCT s.id) AS sales_count
              FROM sale_items si
              JOIN sales s ON s.id = si.sale_id AND s.status = 'completed'
              GROUP BY si.product_id
            ) sold ON sold.product_id = p.id
            WHERE p.active = :yes
            ORDER BY total_sold DESC, sales_count DESC, p.name ASC
            LIMIT :limit
            """
        ),
        {"yes": True, "limit": limit_num},
    ).mappings().all()
    return {"products": [dict(row) for row in rows], "count": len(rows), "limit": limit_num}


def stock_alerts(db: Session) -> list[dict]:
    rows = db.execute(text(ALERT_SELECT), {"yes": True}).mappings().all()
    return [dict(row) for row in rows]


def stock_stats(db: Session) -> dict:
    general = db.execute(
        text(
            """
            SELECT
              COUNT(*) AS total_products,
              COALESCE(SUM(CASE WHEN active = :yes THEN 1 ELSE 0 END), 0) AS active_products,
              COALESCE(SUM(CASE WHEN active = :yes AND stock <= min_stock THEN 1 ELSE 0 END), 0) AS low_stock,
              COALESCE(SUM(CASE WHEN active = :yes AND stock = 0 THEN 1 ELSE 0 END), 0) AS out_of_stock,
              COALESCE(SUM(CASE WHEN active = :yes AND unit_type = 'unidades' THEN 1 ELSE 0 END), 0) AS unit_products,
              COALESCE(SUM(CASE WHEN active = :yes AND unit_type = 'kg' THEN 1 ELSE 0 END), 0) AS kg_products,
              COALESCE(SUM(CASE WHEN active = :yes THEN stock * price ELSE 0 END), 0) AS total_inventory_value
            FROM products
            """
        ),
        {"yes": True},
    ).mappings().first()

    monthly = db.execute(
        text(
            """
            SELECT type, COUNT(*) AS count, SUM(ABS(quantity)) AS total_quantity
            FROM stock_movements
            WHERE created_at >= :since
            GROUP BY type
            ORDER BY type
            """
        ),
        {"since": month_start()},
    ).mappings().all()

    low = db.execute(text(f"{ALERT_SELECT} LIMIT 10"), {"yes": True}).mappings().all()

    return {
        "general": dict(general),
        "monthly_movements": [dict(row) for row in monthly],
        "low_stock_products": [dict(row) for row in low],
    }


def get_product(db: Session, product_id: int) -> dict:
    row = db.execute(text(f"{PRODUCT_SELECT} WHERE p.id = :id"), {"id": product_id}).mappings().first()
    if not row:
        raise NotFoundError("Producto no encontrado", code="PRODUCT_NOT_FOUND")
    return dict(row)


def _unit_type(requested: str | None, fallback: str = UNITS) -> str:
    return requested if requested in UNIT_TYPES else fallback


def _min_stock(value: float | None, unit_type: str) -> Decimal:
    if value is None:
        return Decimal("1.0") if unit_type == KILOGRAMS else Decimal("10")
    amount = Decimal(str(value))
    if unit_type == UNITS and not is_integral(amount):
        raise ValidationError(
            "Para productos por unidades, el stock mínimo debe ser un número entero",
            code="INVALID_UNIT_MIN_STOCK",
        )
    return amount


def _check_barcode(db: Session, barcode: str | None, exclude_id: int | None = None) -> None:
    if not barcode:
        return
    existing = db.execute(
        text("SELECT id FROM products WHERE barcode = :barcode AND id != :exclude_id"),
        {"barcode": barcode, "exclude_id": exclude_id or 0},
    ).first()
    if existing:
        message = "Ya existe otro producto con este código de barras" if exclude_id else "Ya existe un producto con este código de barras"
        raise ConflictError(message, code="BARCODE_EXISTS")


def _check_category(db: Session, category_id: int | None) -> None:
    if not category_id:
        return
    found = db.execute(
        text("SELECT id FROM categories WHERE id = :id AND active = :yes"),
        {"id": category_id, "yes": True},
    ).first()
    if not found:
        raise ValidationError("La categoría especificada no existe o no está activa", code="CATEGORY_NOT_FOUND")


def create_product(db: Session, payload: ProductCreate, user_id: int | None = None) -> dict:
    unit_type = _unit_type(payload.unit_type)
    initial_stock = Decimal(str(payload.stock)) if payload.stock is not None else Decimal("0")
    if unit_type == UNITS and not is_integral(initial_stock):
        raise ValidationError(
            "Para productos por unidades, el stock debe ser un número entero",
            code="INVALID_UNIT_STOCK",
        )
    min_stock = _min_stock(payload.min_stock, unit_type)
    barcode = payload.barcode or None
    _check_barcode(db, barcode)
    _check_category(db, payload.category_id)

    with transaction(db):
        product_id = db.execute(
            insert(products).values(
                name=payload.name,
                description=payload.description or None,
                price=payload.price,
                price_level_2=payload.price_level_2,
                price_level_3=payload.price_level_3,
                cost=payload.cost,
                stock=0,
                min_stock=min_stock,
                unit_type=unit_type,
                category_id=payload.category_id or None,
                barcode=barcode,
                image=payload.image or None,
            )
        ).inserted_primary_key[0]
        if initial_stock > 0:
            stock.post_movement(db, product_id, stock.ENTRY, initial_stock, "Stock inicial", user_id)

    logger.info("Product %s created: %s (stock %s)", product_id, payload.name, initial_stock)
    return get_product(db, product_id)


def update_product(db: Session, product_id: int, payload: ProductUpdate) -> dict:
    existing = get_product(db, product_id)
    unit_type = _unit_type(payload.unit_type, existing["unit_type"] or UNITS)
    min_stock = _min_stock(payload.min_stock, unit_type)
    barcode = payload.barcode or None
    _check_barcode(db, barcode, exclude_id=product_id)
    _check_category(db, payload.category_id)

    with transaction(db):
        db.execute(
            update(products)
            .where(products.c.id == product_id)
            .values(
                name=payload.name,
                description=payload.description or None,
                price=payload.price,
                price_level_2=payload.price_level_2,
                price_level_3=payload.price_level_3,
                cost=payload.cost,
                min_stock=min_stock,
                category_id=payload.category_id or None,
                barcode=barcode,
                image=payload.image or None,
                active=True if payload.active is None else payload.active,
                unit_type=unit_type,
                updated_at=func.current_timestamp(),
            )
        )
    return get_product(db, product_id)


def delete_product(db: Session, product_id: int) -> str:
    get_product(db, product_id)
    sales_count = db.execute(
        text("SELECT COUNT(*) FROM sale_items WHERE product_id = :id"), {"id": product_id}
    ).scalar_one()
    with transaction(db):
        db.execute(
            update(products)
            .where(products.c.id == product_id)
            .values(active=False, updated_at=func.current_timestamp())
        )
    logger.info("Product %s deactivated", product_id)
    if sales_count:
        return "Producto desactivado correctamente (tiene ventas asociadas)"
    return "Producto eliminado correctamente"


def list_movements(db: Session, query: MovementQuery) -> dict:
    filters = FilterSet()
    if query.product_id:
        filters.add("sm.product_id = :product_id", product_id=query.product_id)
    if query.type in stock.MOVEMENT_TYPES:
        filters.add("sm.type = :type", type=query.type)
    if query.user_id:
        filters.add("sm.user_id = :user_id", user_id=query.user_id)
    filters.add_date_range("sm.created_at", query.start_date, query.end_date)

    rows, pagination = paginate(
        db,
        stock.MOVEMENT_SELECT + " WHERE {where}",
        "SELECT COUNT(*) FROM stock_movements sm WHERE {where}",
        filters,
        Page.clamp(query.page, query.limit),
        order_by="sm.created_at DESC, sm.id DESC",
    )
    return {"movements": rows, "pagination": pagination}
