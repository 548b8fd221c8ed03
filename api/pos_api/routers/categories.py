from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from pos_api.db.session import get_db
from pos_api.schemas.categories import CategoryIn, CategoryQuery
from pos_api.schemas.common import envelope
from pos_api.services import categories
from pos_api.services.deps import get_current_user, require_admin

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("")
def list_categories(
    query: Annotated[CategoryQuery, Query()],
    db: Session = Depends(get_db),
    _: dict = Depends(get_current_user),
):
    return envelope(categories.list_categories(db, query.active, query.search))


@router.get("/stats")
def category_stats(db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(categories.category_stats(db))


@router.get("/{category_id}")
def get_category(category_id: int, db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(categories.get_category(db, category_id))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_category(payload: CategoryIn, db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(categories.create_category(db, payload), "Categoría creada exitosamente")


@router.put("/{category_id}")
def update_category(
    category_id: int,
    payload: CategoryIn,
    db: Session = Depends(get_db),
    _: dict = Depends(get_current_user),
):
    return envelope(categories.update_category(db, category_id, payload), "Categoría actualizada exitosamente")


@router.delete("/{category_id}")
def delete_category(category_id: int, db: Session = Depends(get_db), _: dict = Depends(require_admin)):
    categories.delete_category(db, category_id)
    return envelope(message="Categoría eliminada exitosamente")


@router.patch("/{category_id}/restore")
def restore_category(category_id: int, db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(categories.restore_category(db, category_id), "Categoría restaurada exitosamente")
