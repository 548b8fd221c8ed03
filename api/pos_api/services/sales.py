import logging
from datetime import datetime, timezone

from sqlalchemy import bindparam, func, insert, select, text, update
from sqlalchemy.orm import Session

from pos_api.core.errors import NotFoundError, ValidationError
from pos_api.db.listing import DATE_RE, PERIODS, FilterSet, Page, paginate, period_start
from pos_api.db.schema import sale_items, sale_payments, sales
from pos_api.db.session import transaction
from pos_api.schemas.sales import SaleCancel, SaleCreate, SaleQuery
from pos_api.services import cash, customers, stock
from pos_api.services.payments import (
    ACCOUNT,
    CASH,
    MULTIPLE,
    PAYMENT_METHODS,
    money,
    resolve_tenders,
    tender_total,
    with_payment_display,
)

logger = logging.getLogger(__name__)

PENDING = "pending"
COMPLETED = "completed"
CANCELLED = "cancelled"
STATUSES = (PENDING, COMPLETED, CANCELLED)

SALE_SELECT = """
    SELECT
      s.id,
      s.total,
      s.customer_id,
      s.user_id,
      s.payment_method,
      s.status,
      s.notes,
      s.cancelled_at,
      s.cancelled_by,
      s.cancel_reason,
      s.created_at,
      s.updated_at,
      c.name AS customer_name,
      u.name AS user_name,
      (SELECT COUNT(*) FROM sale_items si WHERE si.sale_id = s.id) AS items_count,
      (SELECT COALESCE(SUM(si.quantity), 0) FROM sale_items si WHERE si.sale_id = s.id) AS total_items
    FROM sales s
    LEFT JOIN customers c ON c.id = s.customer_id
    LEFT JOIN users u ON u.id = s.user_id
"""

ITEMS_SELECT = """
    SELECT
      si.id,
      si.sale_id,
      si.product_id,
      si.quantity,
      si.unit_price,
      si.subtotal,
      p.name AS product_name,
      p.image AS product_image,
      p.barcode AS product_barcode,
      p.unit_type AS product_unit_type
    FROM sale_items si
    LEFT JOIN products p ON p.id = si.product_id
    WHERE si.sale_id = :sale_id
    ORDER BY si.id
"""


def _tenders(db: Session, sale_ids: list[int]) -> dict[int, list[dict]]:
    by_sale: dict[int, list[dict]] = {sale_id: [] for sale_id in sale_ids}
    if not sale_ids:
        return by_sale
    rows = db.execute(
        text("SELECT sale_id, method, amount FROM sale_payments WHERE sale_id IN :ids ORDER BY id").bindparams(
            bindparam("ids", expanding=True)
        ),
        {"ids": sale_ids},
    ).mappings().all()
    for row in rows:
        by_sale[row["sale_id"]].append({"method": row["method"], "amount": row["amount"]})
    return by_sale


def _with_display(db: Session, headers: list[dict]) -> list[dict]:
    tenders = _tenders(db, [header["id"] for header in headers])
    return [with_payment_display(header, tenders[header["id"]]) for header in headers]


def list_sales(db: Session, query: SaleQuery) -> dict:
    filters = FilterSet().add_date_range("s.created_at", query.start_date, query.end_date)
    if query.status in STATUSES:
        filters.add("s.status = :status", status=query.status)
    if query.customer_id:
        filters.add("s.customer_id = :customer_id", customer_id=query.customer_id)
    if query.payment_method in PAYMENT_METHODS:
        filters.add(
            "EXISTS (SELECT 1 FROM sale_payments sp WHERE sp.sale_id = s.id AND sp.method = :payment_method)",
            payment_method=query.payment_method,
        )
    elif query.payment_method == MULTIPLE:
        filters.add("s.payment_method = :payment_method", payment_method=MULTIPLE)
    filters.add_search(["CAST(s.id AS CHAR(20))", "c.name", "u.name"], query.search)

    rows, pagination = paginate(
        db,
        SALE_SELECT + " WHERE {where}",
        """
        SELECT COUNT(*) FROM sales s
        LEFT JOIN customers c ON c.id = s.customer_id
        LEFT JOIN users u ON u.id = s.user_id
        WHERE {where}
        """,
        filters,
        Page.clamp(query.page, query.limit),
        order_by="s.created_at DESC, s.id DESC",
    )
    return {"sales": _with_display(db, rows), "pagination": pagination}


def get_sale(db: Session, sale_id: int) -> dict:
    row = db.execute(text(f"{SALE_SELECT} WHERE s.id = :id"), {"id": sale_id}).mappings().first()
    if not row:
        raise NotFoundError("Venta no encontrada", code="SALE_NOT_FOUND")
    sale = _with_display(db, [dict(row)])[0]
    items = db.execute(text(ITEMS_SELECT), {"sale_id": sale_id}).mappings().all()
    sale["items"] = [dict(item) for item in items]
    return sale


def create_sale(db: Session, payload: SaleCreate, user_id: int | None = None) -> dict:
    total = money(payload.total)
    header_method, tenders = resolve_tenders(
        total,
        payload.payment_method,
        [t.model_dump() for t in payload.payment_methods] if payload.payment_methods else None,
    )
    on_account = tender_total(tenders, ACCOUNT)
    in_cash = tender_total(tenders, CASH)

    if payload.customer_id:
        customers.require_active_customer(db, payload.customer_id)
    elif on_account > 0:
        raise ValidationError(
            "Las ventas en cuenta corriente requieren un cliente",
            code="CUSTOMER_REQUIRED_FOR_ACCOUNT",
        )

    with transaction(db):
        session_id = cash.open_session_id(db, for_update=True)
        if session_id is None and cash.get_settings(db)["require_open_session"]:
            raise ValidationError("Debe abrir la caja antes de registrar ventas", code="CASH_SESSION_REQUIRED")

        sale_id = db.execute(
            insert(sales).values(
                total=total,
                customer_id=payload.customer_id,
                user_id=user_id,
                payment_method=header_method,
                status=COMPLETED,
                notes=payload.notes or None,
            )
        ).inserted_primary_key[0]

        for item in payload.items:
            quantity = stock.parse_quantity(item.quantity)
            unit_price = money(item.unit_price)
            db.execute(
                insert(sale_items).values(
                    sale_id=sale_id,
                    product_id=item.product_id,
                    quantity=quantity,
                    unit_price=unit_price,
                    subtotal=money(quantity * unit_price),
                )
            )
            stock.post_movement(
                db, item.product_id, stock.EXIT, quantity, f"Venta #{sale_id}", user_id,
                reference_type="sale", reference_id=sale_id,
            )

        for tender in tenders:
            db.execute(insert(sale_payments).values(sale_id=sale_id, method=tender["method"], amount=tender["amount"]))

        if on_account > 0:
            customers.post_transaction(
                db, payload.customer_id, customers.DEBIT, on_account, f"Venta #{sale_id}", user_id,
                reference_type="sale", reference_id=sale_id,
            )
        if in_cash > 0 and session_id is not None:
            cash.post_cash_movement(
                db, session_id, cash.SALE, in_cash, f"Venta #{sale_id}", user_id,
                reference_type="sale", reference_id=sale_id,
            )

    logger.info("Sale %s created: %s items, total %s, payment %s", sale_id, len(payload.items), total, header_method)
    return get_sale(db, sale_id)


def cancel_sale(db: Session, sale_id: int, payload: SaleCancel, user_id: int) -> dict:
    reason = payload.reason or "Sin motivo"

    with transaction(db):
        sale = db.execute(
            select(sales.c.id, sales.c.status, sales.c.customer_id).where(sales.c.id == sale_id).with_for_update()
        ).mappings().first()
        if not sale:
            raise NotFoundError("Venta no encontrada", code="SALE_NOT_FOUND")
        if sale["status"] == CANCELLED:
            raise ValidationError("La venta ya está cancelada", code="SALE_ALREADY_CANCELLED")

        items = db.execute(
            select(sale_items.c.product_id, sale_items.c.quantity)
            .where(sale_items.c.sale_id == sale_id)
            .order_by(sale_items.c.id)
        ).mappings().all()
        on_account = tender_total(_tenders(db, [sale_id])[sale_id], ACCOUNT)

        db.execute(
            update(sales)
            .where(sales.c.id == sale_id)
            .values(
                status=CANCELLED,
                cancelled_at=func.current_timestamp(),
                cancelled_by=user_id,
                cancel_reason=reason,
                updated_at=func.current_timestamp(),
            )
        )
        for item in items:
            stock.post_movement(
                db, item["product_id"], stock.ENTRY, item["quantity"], f"Cancelación venta #{sale_id}", user_id,
                reference_type="sale", reference_id=sale_id, require_active=False,
            )
        if on_account > 0 and sale["customer_id"]:
            customers.post_transaction(
                db, sale["customer_id"], customers.CREDIT, on_account, f"Cancelación venta #{sale_id}", user_id,
                reference_type="sale", reference_id=sale_id,
            )
        receipt = cash.sale_receipt(db, sale_id)
        if receipt and receipt["session_status"] == cash.OPEN:
            cash.post_cash_movement(
                db, receipt["session_id"], cash.EXPENSE, receipt["amount"], f"Cancelación venta #{sale_id}",
                user_id, reference_type="sale", reference_id=sale_id,
            )

    logger.info("Sale %s cancelled by user %s: %s", sale_id, user_id, reason)
    return get_sale(db, sale_id)


def sales_stats(db: Session, period: str = "today") -> dict:
    if period not in PERIODS:
        raise ValidationError("Período inválido", code="INVALID_PERIOD")
    params = {"since": period_start(period), "completed": COMPLETED, "cancelled": CANCELLED}
    general = db.execute(
        text(
            """
            SELECT
              COUNT(*) AS total_sales,
              COALESCE(SUM(CASE WHEN status = :completed THEN 1 ELSE 0 END), 0) AS completed_sales,
              COALESCE(SUM(CASE WHEN status = :cancelled THEN 1 ELSE 0 END), 0) AS cancelled_sales,
              COALESCE(SUM(CASE WHEN status = :completed THEN total ELSE 0 END), 0) AS total_revenue,
              COALESCE(AVG(CASE WHEN status = :completed THEN total ELSE NULL END), 0) AS average_sale
            FROM sales
            WHERE created_at >= :since
            """
        ),
        params,
    ).mappings().first()
    by_method = db.execute(
        text(
            """
            SELECT sp.method, COUNT(DISTINCT s.id) AS count, COALESCE(SUM(sp.amount), 0) AS total
            FROM sale_payments sp
            JOIN sales s ON s.id = sp.sale_id
            WHERE s.created_at >= :since AND s.status = :completed
            GROUP BY sp.method
            ORDER BY total DESC
            """
        ),
        params,
    ).mappings().all()
    return {"period": period, "general": dict(general), "payment_methods": [dict(row) for row in by_method]}


def daily_report(db: Session, day: str | None = None) -> dict:
    if day and not DATE_RE.match(day):
        raise ValidationError("Fecha inválida, use YYYY-MM-DD", code="INVALID_DATE")
    day = day or datetime.now(timezone.utc).date().isoformat()
    params = {"day": day, "completed": COMPLETED}

    summary = db.execute(
        text(
            """
            SELECT
              COUNT(*) AS total_sales,
              COALESCE(SUM(total), 0) AS total_revenue,
              COALESCE(AVG(total), 0) AS average_sale
            FROM sales
            WHERE DATE(created_at) = :day AND status = :completed
            """
        ),
        params,
    ).mappings().first()
    by_method = db.execute(
        text(
            """
            SELECT sp.method, COALESCE(SUM(sp.amount), 0) AS total
            FROM sale_payments sp
            JOIN sales s ON s.id = sp.sale_id
            WHERE DATE(s.created_at) = :day AND s.status = :completed
            GROUP BY sp.method
            ORDER BY sp.method
            """
        ),
        params,
    ).mappings().all()
    top_products = db.execute(
        text(
            """
            SELECT p.id, p.name, SUM(si.quantity) AS quantity, SUM(si.subtotal) AS revenue
            FROM sale_items si
            JOIN sales s ON s.id = si.sale_id
            JOIN products p ON p.id = si.product_id
            WHERE DATE(s.created_at) = :day AND s.status = :completed
            GROUP BY p.id, p.name
            ORDER BY quantity DESC, revenue DESC
            LIMIT 10
            """
        ),
        params,
    ).mappings().all()
    timestamps = db.execute(
        text("SELECT created_at FROM sales WHERE DATE(created_at) = :day AND status = :completed"),
        params,
    ).scalars().all()

    hourly: dict[int, int] = {}
    for stamp in timestamps:
        hour = stamp.hour if hasattr(stamp, "hour") else int(str(stamp)[11:13])
        hourly[hour] = hourly.get(hour, 0) + 1

    return {
        "date": day,
        "summary": dict(summary),
        "payment_methods": [dict(row) for row in by_method],
        "top_products": [dict(row) for row in top_products],
        "hourly": [{"hour": hour, "count": hourly[hour]} for hour in sorted(hourly)],
    }
