"""Cash register sessions; at most one is open at a time."""
import logging
from decimal import Decimal

from sqlalchemy import func, insert, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pos_api.core.errors import NotFoundError, ValidationError
from pos_api.db.listing import FilterSet, Page, paginate
from pos_api.db.schema import cash_movements, cash_sessions, cash_settings
from pos_api.db.session import transaction
from pos_api.schemas.cash import CashClose, CashHistoryQuery, CashMovementCreate, CashMovementQuery, CashOpen, CashSettingsUpdate
from pos_api.services.payments import money

logger = logging.getLogger(__name__)

OPEN = "open"
CLOSED = "closed"

SALE = "venta"
INCOME = "ingreso"
EXPENSE = "egreso"
MOVEMENT_TYPES = (SALE, INCOME, EXPENSE)

SESSION_SELECT = """
    SELECT
      cs.*,
      uo.name AS opened_by_name,
      uc.name AS closed_by_name
    FROM cash_sessions cs
    LEFT JOIN users uo ON uo.id = cs.opened_by
    LEFT JOIN users uc ON uc.id = cs.closed_by
"""

MOVEMENT_SELECT = """
    SELECT
      cm.id,
      cm.cash_session_id,
      cm.type,
      cm.amount,
      cm.description,
      cm.reference_type,
      cm.reference_id,
      cm.user_id,
      cm.created_at,
      u.name AS user_name
    FROM cash_movements cm
    LEFT JOIN users u ON u.id = cm.user_id
"""


def get_settings(db: Session) -> dict:
    row = db.execute(text("SELECT * FROM cash_settings ORDER BY id LIMIT 1")).mappings().first()
    if row:
        return dict(row)
    return {"id": None, "min_opening_amount": 0, "require_open_session": False, "updated_by": None, "updated_at": None}


def update_settings(db: Session, payload: CashSettingsUpdate, user_id: int) -> dict:
    current = get_settings(db)
    values = payload.model_dump(exclude_none=True)
    with transaction(db):
        if current["id"] is None:
            db.execute(insert(cash_settings).values(**values, updated_by=user_id, updated_at=func.current_timestamp()))
        else:
            db.execute(
                update(cash_settings)
                .where(cash_settings.c.id == current["id"])
                .values(**values, updated_by=user_id, updated_at=func.current_timestamp())
            )
    return get_settings(db)


def open_session_id(db: Session, for_update: bool = False) -> int | None:
    query = select(cash_sessions.c.id).where(cash_sessions.c.status == OPEN).order_by(cash_sessions.c.id.desc())
    if for_update:
        query = query.with_for_update()
    return db.execute(query).scalars().first()


def sale_receipt(db: Session, sale_id: int) -> dict | None:
    """The ``venta`` movement a cash sale left in the drawer, with its session locked."""
    row = db.execute(
        select(cash_movements.c.cash_session_id, func.sum(cash_movements.c.amount).label("amount"))
        .where(
            cash_movements.c.type == SALE,
            cash_movements.c.reference_type == "sale",
            cash_movements.c.reference_id == sale_id,
        )
        .group_by(cash_movements.c.cash_session_id)
    ).mappings().first()
    if not row:
        return None
    session_status = db.execute(
        select(cash_sessions.c.status).where(cash_sessions.c.id == row["cash_session_id"]).with_for_update()
    ).scalar_one()
    return {"session_id": row["cash_session_id"], "amount": money(row["amount"]), "session_status": session_status}


def session_totals(db: Session, session_id: int) -> dict:
    rows = db.execute(
        text(
            """
            SELECT type, COUNT(*) AS count, COALESCE(SUM(amount), 0) AS total
            FROM cash_movements
            WHERE cash_session_id = :session_id
            GROUP BY type
            """
        ),
        {"session_id": session_id},
    ).mappings().all()
    totals = {kind: Decimal("0") for kind in MOVEMENT_TYPES}
    counts = {kind: 0 for kind in MOVEMENT_TYPES}
    for row in rows:
        totals[row["type"]] = money(row["total"])
        counts[row["type"]] = int(row["count"])
    return {"totals": totals, "counts": counts}


def expected_amount(opening: Decimal, totals: dict) -> Decimal:
    return money(opening) + totals[SALE] + totals[INCOME] - totals[EXPENSE]


def _session_summary(db: Session, session: dict) -> dict:
    summary = session_totals(db, session["id"])
    totals = summary["totals"]
    result = dict(session)
    result["sales_total"] = float(totals[SALE])
    result["income_total"] = float(totals[INCOME])
    result["expense_total"] = float(totals[EXPENSE])
    result["movements_count"] = sum(summary["counts"].values())
    result["current_amount"] = float(expected_amount(session["opening_amount"], totals))
    return result


def get_session(db: Session, session_id: int) -> dict:
    row = db.execute(text(f"{SESSION_SELECT} WHERE cs.id = :id"), {"id": session_id}).mappings().first()
    if not row:
        raise NotFoundError("Sesión de caja no encontrada", code="CASH_SESSION_NOT_FOUND")
    return dict(row)


def current_status(db: Session) -> dict:
    session_id = open_session_id(db)
    if session_id is None:
        return {"is_open": False, "session": None}
    return {"is_open": True, "session": _session_summary(db, get_session(db, session_id))}


def open_cash(db: Session, payload: CashOpen, user_id: int) -> dict:
    minimum = money(get_settings(db)["min_opening_amount"] or 0)
    if money(payload.opening_amount) < minimum:
        raise ValidationError(
            f"El monto de apertura debe ser al menos {minimum}",
            code="INVALID_OPENING_AMOUNT",
        )
    already_open = ValidationError("Ya hay una caja abierta", code="CASH_ALREADY_OPEN")
    try:
        with transaction(db):
            if open_session_id(db, for_update=True) is not None:
                raise already_open
            session_id = db.execute(
                insert(cash_sessions).values(
                    status=OPEN,
                    opening_amount=payload.opening_amount,
                    opened_by=user_id,
                    opening_notes=payload.notes or None,
                )
            ).inserted_primary_key[0]
    except IntegrityError:
        # a concurrent open won the uq_cash_sessions_open index
        raise already_open
    logger.info("Cash session %s opened by user %s with %s", session_id, user_id, payload.opening_amount)
    return _session_summary(db, get_session(db, session_id))


def close_cash(db: Session, payload: CashClose, user_id: int) -> dict:
    with transaction(db):
        session_id = open_session_id(db, for_update=True)
        if session_id is None:
            raise ValidationError("No hay una caja abierta", code="NO_OPEN_CASH")
        session = get_session(db, session_id)
        expected = expected_amount(session["opening_amount"], session_totals(db, session_id)["totals"])
        counted = money(payload.closing_amount)
        db.execute(
            update(cash_sessions)
            .where(cash_sessions.c.id == session_id)
            .values(
                status=CLOSED,
                closing_amount=counted,
                expected_amount=expected,
                difference=counted - expected,
                closed_by=user_id,
                closing_notes=payload.notes or None,
                closed_at=func.current_timestamp(),
            )
        )
    logger.info("Cash session %s closed: expected %s, counted %s", session_id, expected, counted)
    return _session_summary(db, get_session(db, session_id))


def post_cash_movement(
    db: Session,
    session_id: int,
    movement_type: str,
    amount,
    description: str,
    user_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
) -> int:
    return db.execute(
        insert(cash_movements).values(
            cash_session_id=session_id,
            type=movement_type,
            amount=money(amount),
            description=description,
            reference_type=reference_type,
            reference_id=reference_id,
            user_id=user_id,
        )
    ).inserted_primary_key[0]


def create_movement(db: Session, payload: CashMovementCreate, user_id: int) -> dict:
    with transaction(db):
        session_id = open_session_id(db, for_update=True)
        if session_id is None:
            raise ValidationError("No hay una caja abierta", code="NO_OPEN_CASH")
        if payload.type == EXPENSE:
            session = get_session(db, session_id)
            available = expected_amount(session["opening_amount"], session_totals(db, session_id)["totals"])
            if money(payload.amount) > available:
                raise ValidationError(
                    f"No hay suficiente efectivo en caja. Disponible: {available}",
                    code="INSUFFICIENT_CASH",
                )
        movement_id = post_cash_movement(db, session_id, payload.type, payload.amount, payload.description, user_id)
    row = db.execute(text(f"{MOVEMENT_SELECT} WHERE cm.id = :id"), {"id": movement_id}).mappings().first()
    return dict(row)


def list_movements(db: Session, query: CashMovementQuery) -> dict:
    session_id = query.session_id or open_session_id(db)
    if session_id is None:
        return {"movements": [], "pagination": Page.clamp(query.page, query.limit).meta(0)}
    filters = FilterSet().add("cm.cash_session_id = :session_id", session_id=session_id)
    if query.type in MOVEMENT_TYPES:
        filters.add("cm.type = :type", type=query.type)
    rows, pagination = paginate(
        db,
        MOVEMENT_SELECT + " WHERE {where}",
        "SELECT COUNT(*) FROM cash_movements cm WHERE {where}",
        filters,
        Page.clamp(query.page, query.limit),
        order_by="cm.created_at DESC, cm.id DESC",
    )
    return {"session_id": session_id, "movements": rows, "pagination": pagination}


def history(db: Session, query: CashHistoryQuery) -> dict:
    filters = FilterSet().add_date_range("cs.opened_at", query.start_date, query.end_date)
    rows, pagination = paginate(
        db,
        SESSION_SELECT + " WHERE {where}",
        "SELECT COUNT(*) FROM cash_sessions cs WHERE {where}",
        filters,
        Page.clamp(query.page, query.limit),
        order_by="cs.opened_at DESC, cs.id DESC",
    )
    return {"sessions": rows, "pagination": pagination}


def session_details(db: Session, session_id: int) -> dict:
    session = _session_summary(db, get_session(db, session_id))
    movements = db.execute(
        text(f"{MOVEMENT_SELECT} WHERE cm.cash_session_id = :id ORDER BY cm.created_at ASC, cm.id ASC"),
        {"id": session_id},
    ).mappings().all()
    session["movements"] = [dict(row) for row in movements]
    return session
