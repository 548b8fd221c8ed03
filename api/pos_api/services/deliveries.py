import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy import bindparam, func, insert, select, text, update
from sqlalchemy.orm import Session

from pos_api.core.errors import NotFoundError, ValidationError
from pos_api.db.listing import PERIODS, FilterSet, Page, paginate, period_start
from pos_api.db.schema import (
    deliveries,
    delivery_items,
    delivery_locations,
    delivery_payments,
    delivery_status_history,
    products,
)
from pos_api.db.session import transaction
from pos_api.schemas.deliveries import DeliveryCreate, DeliveryQuery, DeliveryStatusUpdate
from pos_api.services import customers
from pos_api.services.payments import money, resolve_tenders, with_payment_display

logger = logging.getLogger(__name__)

PENDING = "pending"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
CANCELLED = "cancelled"
STATUSES = (PENDING, IN_PROGRESS, COMPLETED, CANCELLED)

TRANSITIONS = {
    PENDING: (IN_PROGRESS, CANCELLED),
    IN_PROGRESS: (COMPLETED, CANCELLED),
    COMPLETED: (),
    CANCELLED: (),
}

DELIVERY_SELECT = """
    SELECT
      d.*,
      u.name AS driver_name,
      u.email AS driver_email,
      u.phone AS driver_phone,
      c.name AS customer_name,
      c.email AS customer_email,
      c.phone AS customer_phone,
      c.address AS customer_address,
      (SELECT COUNT(*) FROM delivery_items di WHERE di.delivery_id = d.id) AS items_count,
      (SELECT COALESCE(SUM(di.quantity), 0) FROM delivery_items di WHERE di.delivery_id = d.id) AS total_items
    FROM deliveries d
    LEFT JOIN users u ON u.id = d.driver_id
    LEFT JOIN customers c ON c.id = d.customer_id
"""


def can_transition(current: str, new: str) -> bool:
    return new in TRANSITIONS.get(current, ())


def _tenders(db: Session, delivery_ids: list[int]) -> dict[int, list[dict]]:
    by_delivery: dict[int, list[dict]] = {delivery_id: [] for delivery_id in delivery_ids}
    if not delivery_ids:
        return by_delivery
    rows = db.execute(
        text(
            "SELECT delivery_id, method, amount FROM delivery_payments WHERE delivery_id IN :ids ORDER BY id"
        ).bindparams(bindparam("ids", expanding=True)),
        {"ids": delivery_ids},
    ).mappings().all()
    for row in rows:
        by_delivery[row["delivery_id"]].append({"method": row["method"], "amount": row["amount"]})
    return by_delivery


def _with_display(db: Session, headers: list[dict]) -> list[dict]:
    tenders = _tenders(db, [header["id"] for header in headers])
    return [with_payment_display(header, tenders[header["id"]]) for header in headers]


def list_deliveries(db: Session, query: DeliveryQuery) -> dict:
    filters = FilterSet().add_date_range("d.created_at", query.start_date, query.end_date)
    if query.status in STATUSES:
        filters.add("d.status = :status", status=query.status)
    if query.customer_id:
        filters.add("d.customer_id = :customer_id", customer_id=query.customer_id)
    filters.add_search(["CAST(d.id AS CHAR(20))", "c.name", "u.name"], query.search)

    rows, pagination = paginate(
        db,
        DELIVERY_SELECT + " WHERE {where}",
        """
        SELECT COUNT(*) FROM deliveries d
        LEFT JOIN users u ON u.id = d.driver_id
        LEFT JOIN customers c ON c.id = d.customer_id
        WHERE {where}
        """,
        filters,
        Page.clamp(query.page, query.limit),
        order_by="d.created_at DESC, d.id DESC",
    )
    return {"deliveries": _with_display(db, rows), "pagination": pagination}


def _header(db: Session, delivery_id: int) -> dict:
    row = db.execute(text(f"{DELIVERY_SELECT} WHERE d.id = :id"), {"id": delivery_id}).mappings().first()
    if not row:
        raise NotFoundError("Reparto no encontrado", code="DELIVERY_NOT_FOUND")
    return _with_display(db, [dict(row)])[0]


def _items(db: Session, delivery_id: int) -> list[dict]:
    rows = db.execute(
        text(
            """
            SELECT
              di.*,
              p.name AS product_name,
              p.image AS product_image,
              p.barcode AS product_barcode,
              p.unit_type AS product_unit_type
            FROM delivery_items di
            LEFT JOIN products p ON p.id = di.product_id
            WHERE di.delivery_id = :id
            ORDER BY di.id
            """
        ),
        {"id": delivery_id},
    ).mappings().all()
    return [dict(row) for row in rows]


def get_delivery(db: Session, delivery_id: int) -> dict:
    delivery = _header(db, delivery_id)
    delivery["items"] = _items(db, delivery_id)
    locations = db.execute(
        text("SELECT * FROM delivery_locations WHERE delivery_id = :id ORDER BY created_at DESC, id DESC"),
        {"id": delivery_id},
    ).mappings().all()
    history = db.execute(
        text(
            """
            SELECT h.*, u.name AS user_name
            FROM delivery_status_history h
            LEFT JOIN users u ON u.id = h.user_id
            WHERE h.delivery_id = :id
            ORDER BY h.created_at ASC, h.id ASC
            """
        ),
        {"id": delivery_id},
    ).mappings().all()
    delivery["locations"] = [dict(row) for row in locations]
    delivery["status_history"] = [dict(row) for row in history]
    return delivery


def _require_driver(db: Session, driver_id: int) -> None:
    found = db.execute(
        text("SELECT id FROM users WHERE id = :id AND active = :yes"),
        {"id": driver_id, "yes": True},
    ).first()
    if not found:
        raise ValidationError("Repartidor no encontrado o inactivo", code="DRIVER_NOT_FOUND")


def _require_products(db: Session, product_ids: list[int]) -> None:
    wanted = set(product_ids)
    found = db.execute(
        select(products.c.id).where(products.c.id.in_(wanted), products.c.active.is_(True))
    ).scalars().all()
    missing = sorted(wanted - set(found))
    if missing:
        raise ValidationError(f"Producto {missing[0]} no encontrado o inactivo", code="PRODUCT_NOT_FOUND")


def create_delivery(db: Session, payload: DeliveryCreate, user_id: int | None = None) -> dict:
    total = money(payload.total)
    header_method, tenders = resolve_tenders(
        total,
        payload.payment_method,
        [t.model_dump() for t in payload.payment_methods] if payload.payment_methods else None,
    )
    customers.require_active_customer(db, payload.customer_id)
    _require_driver(db, payload.driver_id)
    _require_products(db, [item.product_id for item in payload.items])

    with transaction(db):
        delivery_id = db.execute(
            insert(deliveries).values(
                total=total,
                customer_id=payload.customer_id,
                driver_id=payload.driver_id,
                user_id=user_id,
                notes=payload.notes or None,
                payment_method=header_method,
                status=PENDING,
            )
        ).inserted_primary_key[0]
        for item in payload.items:
            quantity = Decimal(str(item.quantity))
            unit_price = money(item.unit_price)
            db.execute(
                insert(delivery_items).values(
                    delivery_id=delivery_id,
                    product_id=item.product_id,
                    quantity=quantity,
                    unit_price=unit_price,
                    subtotal=money(quantity * unit_price),
                )
            )
        for tender in tenders:
            db.execute(
                insert(delivery_payments).values(delivery_id=delivery_id, method=tender["method"], amount=tender["amount"])
            )
        db.execute(
            insert(delivery_status_history).values(
                delivery_id=delivery_id, previous_status=None, new_status=PENDING, user_id=user_id, notes=None
            )
        )

    logger.info(
        "Delivery %s created for customer %s, driver %s, total %s",
        delivery_id, payload.customer_id, payload.driver_id, total,
    )
    delivery = _header(db, delivery_id)
    delivery["items"] = _items(db, delivery_id)
    return delivery


def _coordinate(value) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def update_status(db: Session, delivery_id: int, payload: DeliveryStatusUpdate, user_id: int | None = None) -> dict:
    if payload.status not in STATUSES:
        raise ValidationError("Estado inválido", code="INVALID_STATUS")
    notes = payload.notes or None
    latitude = _coordinate(payload.latitude)
    longitude = _coordinate(payload.longitude)

    with transaction(db):
        current = db.execute(
            select(deliveries.c.id, deliveries.c.status, deliveries.c.notes)
            .where(deliveries.c.id == delivery_id)
            .with_for_update()
        ).mappings().first()
        if not current:
            raise NotFoundError("Reparto no encontrado", code="DELIVERY_NOT_FOUND")
        if not can_transition(current["status"], payload.status):
            raise ValidationError(
                f"No se puede pasar de '{current['status']}' a '{payload.status}'",
                code="INVALID_STATUS_TRANSITION",
            )

        values = {"status": payload.status, "updated_at": func.current_timestamp()}
        if notes:
            values["notes"] = f"{current['notes'] or ''} - {notes}"
        db.execute(update(deliveries).where(deliveries.c.id == delivery_id).values(**values))

        if latitude is not None and longitude is not None:
            db.execute(
                insert(delivery_locations).values(delivery_id=delivery_id, latitude=latitude, longitude=longitude)
            )

        db.execute(
            insert(delivery_status_history).values(
                delivery_id=delivery_id,
                previous_status=current["status"],
                new_status=payload.status,
                user_id=user_id,
                notes=notes,
            )
        )

    logger.info("Delivery %s: %s -> %s", delivery_id, current["status"], payload.status)
    return _header(db, delivery_id)


def driver_deliveries(db: Session, driver_id: int, status: str | None = PENDING) -> dict:
    filters = FilterSet().add("d.driver_id = :driver_id", driver_id=driver_id)
    if status in (PENDING, IN_PROGRESS, COMPLETED):
        filters.add("d.status = :status", status=status)
    rows = db.execute(
        text(
            f"""
            {DELIVERY_SELECT}
            WHERE {filters.where}
            ORDER BY CASE WHEN d.status = 'in_progress' THEN 0 ELSE 1 END, d.created_at ASC, d.id ASC
            """
        ),
        filters.params,
    ).mappings().all()
    return {"deliveries": _with_display(db, [dict(row) for row in rows])}


def delivery_stats(db: Session, period: str = "today") -> dict:
    if period not in PERIODS:
        raise ValidationError("Período inválido", code="INVALID_PERIOD")
    stats = db.execute(
        text(
            """
            SELECT
              COUNT(*) AS total_deliveries,
              COALESCE(SUM(CASE WHEN d.status = 'completed' THEN 1 ELSE 0 END), 0) AS completed_deliveries,
              COALESCE(SUM(CASE WHEN d.status = 'in_progress' THEN 1 ELSE 0 END), 0) AS in_progress_deliveries,
              COALESCE(SUM(CASE WHEN d.status = 'pending' THEN 1 ELSE 0 END), 0) AS pending_deliveries,
              COALESCE(SUM(CASE WHEN d.status = 'cancelled' THEN 1 ELSE 0 END), 0) AS cancelled_deliveries,
              COALESCE(SUM(CASE WHEN d.status = 'completed' THEN d.total ELSE 0 END), 0) AS total_revenue,
              COALESCE(AVG(CASE WHEN d.status = 'completed' THEN d.total ELSE NULL END), 0) AS average_delivery,
              COALESCE(SUM(
                CASE WHEN d.status = 'completed'
                  THEN (SELECT COALESCE(SUM(di.quantity), 0) FROM delivery_items di WHERE di.delivery_id = d.id)
                  ELSE 0 END
              ), 0) AS total_items_delivered
            FROM deliveries d
            WHERE d.created_at >= :since
            """
        ),
        {"since": period_start(period)},
    ).mappings().first()
    return {"period": period, **dict(stats)}
