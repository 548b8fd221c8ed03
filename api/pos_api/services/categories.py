import logging

from sqlalchemy import func, insert, text, update
from sqlalchemy.orm import Session

from pos_api.core.errors import ConflictError, NotFoundError, ValidationError
from pos_api.db.listing import FilterSet
from pos_api.db.schema import categories
from pos_api.db.session import transaction
from pos_api.schemas.categories import CategoryIn

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "#3B82F6"
DEFAULT_ICON = "📦"


def list_categories(db: Session, active: str = "true", search: str | None = None) -> list[dict]:
    filters = FilterSet().add_active("active", active).add_search(["name", "description"], search)
    rows = db.execute(
        text(f"SELECT * FROM categories WHERE {filters.where} ORDER BY name ASC"),
        filters.params,
    ).mappings().all()
    return [dict(row) for row in rows]


def get_category(db: Session, category_id: int) -> dict:
    row = db.execute(text("SELECT * FROM categories WHERE id = :id"), {"id": category_id}).mappings().first()
    if not row:
        raise NotFoundError("Categoría no encontrada", code="CATEGORY_NOT_FOUND")
    return dict(row)


def _ensure_unique_name(db: Session, name: str, exclude_id: int | None = None) -> None:
    existing = db.execute(
        text("SELECT id FROM categories WHERE name = :name AND id != :exclude_id"),
        {"name": name, "exclude_id": exclude_id or 0},
    ).first()
    if existing:
        message = "Ya existe otra categoría con este nombre" if exclude_id else "Ya existe una categoría con este nombre"
        raise ConflictError(message, code="CATEGORY_EXISTS")


def create_category(db: Session, payload: CategoryIn) -> dict:
    _ensure_unique_name(db, payload.name)
    with transaction(db):
        category_id = db.execute(
            insert(categories).values(
                name=payload.name,
                description=payload.description or None,
                color=payload.color or DEFAULT_COLOR,
                icon=payload.icon or DEFAULT_ICON,
            )
        ).inserted_primary_key[0]
    logger.info("Category %s created: %s", category_id, payload.name)
    return get_category(db, category_id)


def update_category(db: Session, category_id: int, payload: CategoryIn) -> dict:
    get_category(db, category_id)
    _ensure_unique_name(db, payload.name, exclude_id=category_id)
    with transaction(db):
        db.execute(
            update(categories)
            .where(categories.c.id == category_id)
            .values(
                name=payload.name,
                description=payload.description or None,
                color=payload.color or DEFAULT_COLOR,
                icon=payload.icon or DEFAULT_ICON,
                active=True if payload.active is None else payload.active,
                updated_at=func.current_timestamp(),
            )
        )
    return get_category(db, category_id)


def delete_category(db: Session, category_id: int) -> None:
    get_category(db, category_id)
    in_use = db.execute(
        text("SELECT COUNT(*) FROM products WHERE category_id = :id AND active = :active"),
        {"id": category_id, "active": True},
    ).scalar_one()
    if in_use:
        raise ValidationError(
            f"No se puede eliminar la categoría porque tiene {in_use} productos asociados",
            code="CATEGORY_HAS_PRODUCTS",
        )
    _set_active(db, category_id, False)
    logger.info("Category %s deactivated", category_id)


def restore_category(db: Session, category_id: int) -> dict:
    get_category(db, category_id)
    _set_active(db, category_id, True)
    return get_category(db, category_id)


def _set_active(db: Session, category_id: int, active: bool) -> None:
    with transaction(db):
        db.execute(
            update(categories)
            .where(categories.c.id == category_id)
            .values(active=active, updated_at=func.current_timestamp())
        )


def category_stats(db: Session) -> dict:
    general = db.execute(
        text(
            """
            SELECT
              COUNT(*) AS total_categories,
              COALESCE(SUM(CASE WHEN active = :yes THEN 1 ELSE 0 END), 0) AS active_categories,
              COALESCE(SUM(CASE WHEN active = :no THEN 1 ELSE 0 END), 0) AS inactive_categories
            FROM categories
            """
        ),
        {"yes": True, "no": False},
    ).mappings().first()

    top = db.execute(
        text(
            """
            SELECT
              c.id,
              c.name,
              c.color,
              c.icon,
              (
                SELECT COUNT(*)
                FROM products p
                WHERE p.category_id = c.id AND p.active = :yes
              ) AS product_count
            FROM categories c
            WHERE c.active = :yes
            ORDER BY product_count DESC, c.name ASC
            LIMIT 5
            """
        ),
        {"yes": True},
    ).mappings().all()

    return {"general": dict(general), "top_categories": [dict(row) for row in top]}
