from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from pos_api.db.session import get_db
from pos_api.schemas.common import envelope
from pos_api.schemas.inventory import MovementQuery, ProductCreate, ProductQuery, ProductUpdate, StockMovementCreate
from pos_api.services import products, stock
from pos_api.services.deps import get_current_user, require_admin

router = APIRouter(prefix="/products", tags=["products"])


@router.get("")
def list_products(
    query: Annotated[ProductQuery, Query()],
    db: Session = Depends(get_db),
    _: dict = Depends(get_current_user),
):
    return envelope(products.list_products(db, query))


@router.get("/top-selling")
def top_selling(limit: str | None = None, db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(products.top_selling(db, limit if limit is not None else 10))


@router.get("/stats")
def stock_stats(db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(products.stock_stats(db))


@router.get("/alerts")
def stock_alerts(db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(products.stock_alerts(db))


@router.get("/movements/list")
def list_movements(
    query: Annotated[MovementQuery, Query()],
    db: Session = Depends(get_db),
    _: dict = Depends(get_current_user),
):
    return envelope(products.list_movements(db, query))


@router.post("/movements", status_code=status.HTTP_201_CREATED)
def create_movement(
    payload: StockMovementCreate,
    db: Session = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    movement = stock.apply_movement(db, payload.product_id, payload.type, payload.quantity, payload.reason, user["id"])
    return envelope(movement, "Movimiento de stock registrado exitosamente")


@router.get("/{product_id}")
def get_product(product_id: int, db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(products.get_product(db, product_id))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_product(payload: ProductCreate, db: Session = Depends(get_db), user: dict = Depends(get_current_user)):
    return envelope(products.create_product(db, payload, user["id"]), "Producto creado exitosamente")


@router.put("/{product_id}")
def update_product(
    product_id: int,
    payload: ProductUpdate,
    db: Session = Depends(get_db),
    _: dict = Depends(get_current_user),
):
    return envelope(products.update_product(db, product_id, payload), "Producto actualizado exitosamente")


@router.delete("/{product_id}")
def delete_product(product_id: int, db: Session = Depends(get_db), _: dict = Depends(require_admin)):
    return envelope(message=products.delete_product(db, product_id))
