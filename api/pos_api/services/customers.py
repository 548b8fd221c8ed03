import logging
from decimal import Decimal

from sqlalchemy import func, insert, select, text, update
from sqlalchemy.orm import Session

from pos_api.core.errors import NotFoundError, ValidationError
from pos_api.db.listing import FilterSet, Page, paginate
from pos_api.db.schema import customer_transactions, customers
from pos_api.db.session import transaction
from pos_api.schemas.common import ListQuery
from pos_api.schemas.customers import AccountTransactionCreate, CustomerIn, CustomerQuery, CustomerUpdate
from pos_api.services.payments import money

logger = logging.getLogger(__name__)

DEBIT = "debito"
CREDIT = "credito"

TRANSACTION_SELECT = """
    SELECT
      ct.id,
      ct.customer_id,
      ct.type,
      ct.amount,
      ct.previous_balance,
      ct.new_balance,
      ct.description,
      ct.reference_type,
      ct.reference_id,
      ct.user_id,
      ct.created_at,
      u.name AS user_name
    FROM customer_transactions ct
    LEFT JOIN users u ON u.id = ct.user_id
"""


def list_customers(db: Session, query: CustomerQuery) -> dict:
    filters = FilterSet().add_active("c.active", query.active)
    filters.add_search(["c.name", "c.email", "c.phone", "c.document_number"], query.search)
    if query.with_balance:
        filters.add("c.current_balance > 0")
    rows, pagination = paginate(
        db,
        "SELECT c.* FROM customers c WHERE {where}",
        "SELECT COUNT(*) FROM customers c WHERE {where}",
        filters,
        Page.clamp(query.page, query.limit),
        order_by="c.name ASC, c.id ASC",
    )
    return {"customers": rows, "pagination": pagination}


def get_customer(db: Session, customer_id: int) -> dict:
    row = db.execute(text("SELECT * FROM customers WHERE id = :id"), {"id": customer_id}).mappings().first()
    if not row:
        raise NotFoundError("Cliente no encontrado", code="CUSTOMER_NOT_FOUND")
    return dict(row)


def require_active_customer(db: Session, customer_id: int) -> dict:
    row = db.execute(
        text("SELECT id, name FROM customers WHERE id = :id AND active = :yes"),
        {"id": customer_id, "yes": True},
    ).mappings().first()
    if not row:
        raise ValidationError("Cliente no encontrado o inactivo", code="CUSTOMER_NOT_FOUND")
    return dict(row)


def create_customer(db: Session, payload: CustomerIn) -> dict:
    with transaction(db):
        customer_id = db.execute(
            insert(customers).values(
                name=payload.name,
                email=payload.email or None,
                phone=payload.phone or None,
                address=payload.address or None,
                document_number=payload.document_number or None,
                credit_limit=payload.credit_limit,
                notes=payload.notes or None,
            )
        ).inserted_primary_key[0]
    logger.info("Customer %s created: %s", customer_id, payload.name)
    return get_customer(db, customer_id)


def update_customer(db: Session, customer_id: int, payload: CustomerUpdate) -> dict:
    get_customer(db, customer_id)
    with transaction(db):
        db.execute(
            update(customers)
            .where(customers.c.id == customer_id)
            .values(
                name=payload.name,
                email=payload.email or None,
                phone=payload.phone or None,
                address=payload.address or None,
                document_number=payload.document_number or None,
                credit_limit=payload.credit_limit,
                notes=payload.notes or None,
                active=True if payload.active is None else payload.active,
                updated_at=func.current_timestamp(),
            )
        )
    return get_customer(db, customer_id)


def delete_customer(db: Session, customer_id: int) -> None:
    customer = get_customer(db, customer_id)
    if money(customer["current_balance"]) > 0:
        raise ValidationError(
            "No se puede eliminar un cliente con saldo pendiente",
            code="CUSTOMER_HAS_BALANCE",
        )
    with transaction(db):
        db.execute(
            update(customers)
            .where(customers.c.id == customer_id)
            .values(active=False, updated_at=func.current_timestamp())
        )
    logger.info("Customer %s deactivated", customer_id)


def customer_balance(db: Session, customer_id: int) -> dict:
    customer = get_customer(db, customer_id)
    balance = money(customer["current_balance"])
    limit = money(customer["credit_limit"])
    return {
        "customer_id": customer["id"],
        "name": customer["name"],
        "current_balance": float(balance),
        "credit_limit": float(limit),
        "available_credit": float(max(limit - balance, Decimal("0"))) if limit > 0 else None,
    }


def list_transactions(db: Session, customer_id: int, query: ListQuery) -> dict:
    get_customer(db, customer_id)
    filters = FilterSet().add("ct.customer_id = :customer_id", customer_id=customer_id)
    rows, pagination = paginate(
        db,
        TRANSACTION_SELECT + " WHERE {where}",
        "SELECT COUNT(*) FROM customer_transactions ct WHERE {where}",
        filters,
        Page.clamp(query.page, query.limit),
        order_by="ct.created_at DESC, ct.id DESC",
    )
    return {"transactions": rows, "pagination": pagination}


def post_transaction(
    db: Session,
    customer_id: int,
    transaction_type: str,
    amount,
    description: str | None,
    user_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    enforce_limit: bool = True,
) -> int:
    """Move a customer's balance without committing; returns the transaction id."""
    if transaction_type not in (DEBIT, CREDIT):
        raise ValidationError("Tipo de transacción inválido", code="INVALID_TRANSACTION_TYPE")
    value = money(amount)
    if value <= 0:
        raise ValidationError("El monto debe ser mayor a 0", code="INVALID_AMOUNT")

    row = db.execute(
        select(customers.c.id, customers.c.current_balance, customers.c.credit_limit, customers.c.active)
        .where(customers.c.id == customer_id)
        .with_for_update()
    ).mappings().first()
    if not row or not row["active"]:
        raise ValidationError("Cliente no encontrado o inactivo", code="CUSTOMER_NOT_FOUND")

    previous = money(row["current_balance"])
    new_balance = previous + value if transaction_type == DEBIT else previous - value
    limit = money(row["credit_limit"])
    if transaction_type == DEBIT and enforce_limit and limit > 0 and new_balance > limit:
        raise ValidationError(
            f"El cliente supera su límite de crédito ({limit})",
            code="CREDIT_LIMIT_EXCEEDED",
        )

    transaction_id = db.execute(
        insert(customer_transactions).values(
            customer_id=customer_id,
            type=transaction_type,
            amount=value,
            previous_balance=previous,
            new_balance=new_balance,
            description=description,
            reference_type=reference_type,
            reference_id=reference_id,
            user_id=user_id,
        )
    ).inserted_primary_key[0]
    db.execute(
        update(customers)
        .where(customers.c.id == customer_id)
        .values(current_balance=new_balance, updated_at=func.current_timestamp())
    )
    return transaction_id


def create_account_transaction(db: Session, payload: AccountTransactionCreate, user_id: int | None = None) -> dict:
    with transaction(db):
        transaction_id = post_transaction(
            db,
            payload.customer_id,
            payload.type,
            payload.amount,
            payload.description or ("Cargo manual" if payload.type == DEBIT else "Pago recibido"),
            user_id,
        )
    logger.info("Account %s on customer %s: %s", payload.type, payload.customer_id, payload.amount)
    row = db.execute(text(f"{TRANSACTION_SELECT} WHERE ct.id = :id"), {"id": transaction_id}).mappings().first()
    return dict(row)


def customer_stats(db: Session) -> dict:
    general = db.execute(
        text(
            """
            SELECT
              COUNT(*) AS total_customers,
              COALESCE(SUM(CASE WHEN active = :yes THEN 1 ELSE 0 END), 0) AS active_customers,
              COALESCE(SUM(CASE WHEN active = :yes AND current_balance > 0 THEN 1 ELSE 0 END), 0) AS with_balance,
              COALESCE(SUM(CASE WHEN active = :yes THEN current_balance ELSE 0 END), 0) AS total_balance
            FROM customers
            """
        ),
        {"yes": True},
    ).mappings().first()
    top_debtors = db.execute(
        text(
            """
            SELECT id, name, phone, current_balance, credit_limit
            FROM customers
            WHERE active = :yes AND current_balance > 0
            ORDER BY current_balance DESC
            LIMIT 5
            """
        ),
        {"yes": True},
    ).mappings().all()
    return {"general": dict(general), "top_debtors": [dict(row) for row in top_debtors]}
