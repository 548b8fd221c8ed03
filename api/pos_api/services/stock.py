"""Stock ledger: ``stock`` is the running fold of ``stock_movements``."""
import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import func, insert, select, text, update
from sqlalchemy.orm import Session

from pos_api.core.errors import InsufficientStockError, NotFoundError, ValidationError
from pos_api.db.schema import products, stock_movements
from pos_api.db.session import transaction

logger = logging.getLogger(__name__)

ENTRY = "entrada"
EXIT = "salida"
ADJUSTMENT = "ajuste"
MOVEMENT_TYPES = (ENTRY, EXIT, ADJUSTMENT)

UNITS = "unidades"
KILOGRAMS = "kg"
UNIT_TYPES = (UNITS, KILOGRAMS)

MOVEMENT_SELECT = """
    SELECT
      sm.id,
      sm.product_id,
      sm.type,
      sm.quantity,
      sm.previous_stock,
      sm.new_stock,
      sm.reason,
      sm.user_id,
      sm.reference_type,
      sm.reference_id,
      sm.created_at,
      p.name AS product_name,
      p.image AS product_image,
      p.unit_type AS product_unit_type,
      u.name AS user_name
    FROM stock_movements sm
    LEFT JOIN products p ON p.id = sm.product_id
    LEFT JOIN users u ON u.id = sm.user_id
"""


def parse_quantity(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValidationError("Cantidad inválida", code="INVALID_QUANTITY")
    try:
        quantity = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("Cantidad inválida", code="INVALID_QUANTITY")
    if not quantity.is_finite():
        raise ValidationError("Cantidad inválida", code="INVALID_QUANTITY")
    return quantity


def is_integral(value: Decimal) -> bool:
    return value == value.to_integral_value()


def compute_new_stock(movement_type: str, previous: Decimal, quantity: Decimal) -> tuple[Decimal, Decimal]:
    """Return ``(delta, new_stock)`` for a movement, or raise if it is not allowed."""
    if movement_type == ENTRY:
        if quantity <= 0:
            raise ValidationError("La cantidad para entrada debe ser mayor a 0", code="INVALID_ENTRY_QUANTITY")
        delta = abs(quantity)
        return delta, previous + delta

    if movement_type == EXIT:
        if quantity <= 0:
            raise ValidationError("La cantidad para salida debe ser mayor a 0", code="INVALID_EXIT_QUANTITY")
        delta = -abs(quantity)
        new_stock = previous + delta
        if new_stock < 0:
            raise InsufficientStockError(
                f"No hay suficiente stock. Stock actual: {previous.normalize():f}, "
                f"cantidad solicitada: {abs(quantity).normalize():f}"
            )
        return delta, new_stock

    if movement_type == ADJUSTMENT:
        if quantity < 0:
            raise ValidationError("El stock no puede ser negativo", code="NEGATIVE_STOCK")
        new_stock = abs(quantity)
        return new_stock - previous, new_stock

    raise ValidationError(
        "Tipo de movimiento inválido. Debe ser: entrada, salida o ajuste",
        code="INVALID_MOVEMENT_TYPE",
    )


def lock_product(db: Session, product_id: int, require_active: bool = True) -> dict:
    """Read a product for update; the row lock holds until the transaction ends."""
    query = select(
        products.c.id,
        products.c.name,
        products.c.stock,
        products.c.unit_type,
        products.c.active,
    ).where(products.c.id == product_id)
    if require_active:
        query = query.where(products.c.active.is_(True))
    row = db.execute(query.with_for_update()).mappings().first()
    if not row:
        raise NotFoundError("Producto no encontrado o inactivo", code="PRODUCT_NOT_FOUND")
    return dict(row)


def post_movement(
    db: Session,
    product_id: int,
    movement_type: str,
    quantity: Any,
    reason: str | None,
    user_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    require_active: bool = True,
) -> int:
    """Validate and write one movement without committing; returns the movement id."""
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(
            "Tipo de movimiento inválido. Debe ser: entrada, salida o ajuste",
            code="INVALID_MOVEMENT_TYPE",
        )
    amount = parse_quantity(quantity)
    if not reason or not reason.strip():
        raise ValidationError("La razón del movimiento es requerida", code="REASON_REQUIRED")

    product = lock_product(db, product_id, require_active)
    if product["unit_type"] == UNITS and not is_integral(amount):
        raise ValidationError(
            "Para productos por unidades, la cantidad debe ser un número entero",
            code="INVALID_UNIT_QUANTITY",
        )

    previous = Decimal(str(product["stock"]))
    delta, new_stock = compute_new_stock(movement_type, previous, amount)

    movement_id = db.execute(
        insert(stock_movements).values(
            product_id=product_id,
            type=movement_type,
            quantity=delta,
            previous_stock=previous,
            new_stock=new_stock,
            reason=reason.strip(),
            user_id=user_id,
            reference_type=reference_type,
            reference_id=reference_id,
        )
    ).inserted_primary_key[0]
    db.execute(
        update(products)
        .where(products.c.id == product_id)
        .values(stock=new_stock, updated_at=func.current_timestamp())
    )
    logger.info(
        "Stock movement %s on product %s: %s -> %s (%s)",
        movement_type, product_id, previous, new_stock, delta,
    )
    return movement_id


def apply_movement(
    db: Session,
    product_id: int,
    movement_type: str,
    quantity: Any,
    reason: str | None,
    user_id: int | None = None,
) -> dict:
    """Record a movement in its own transaction and return it with display fields."""
    try:
        with transaction(db):
            movement_id = post_movement(db, product_id, movement_type, quantity, reason, user_id)
    except (ValidationError, InsufficientStockError, NotFoundError) as exc:
        logger.warning("Stock movement on product %s rejected: %s", product_id, exc.message)
        raise
    return get_movement(db, movement_id)


def get_movement(db: Session, movement_id: int) -> dict:
    row = db.execute(text(f"{MOVEMENT_SELECT} WHERE sm.id = :id"), {"id": movement_id}).mappings().first()
    if not row:
        raise NotFoundError("Movimiento no encontrado", code="MOVEMENT_NOT_FOUND")
    return dict(row)
