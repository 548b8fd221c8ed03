from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from pos_api.core.security import ROLE_ADMIN, ROLE_EMPLOYEE
from pos_api.db.session import get_db
from pos_api.schemas.common import envelope
from pos_api.schemas.sales import SaleCancel, SaleCreate, SaleQuery
from pos_api.services import sales
from pos_api.services.deps import get_current_user, require_admin, require_role

router = APIRouter(prefix="/sales", tags=["sales"])


@router.get("")
def list_sales(
    query: Annotated[SaleQuery, Query()],
    db: Session = Depends(get_db),
    _: dict = Depends(get_current_user),
):
    return envelope(sales.list_sales(db, query))


@router.get("/stats")
def sales_stats(period: str = "today", db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(sales.sales_stats(db, period))


@router.get("/report/daily")
def daily_report(date: str | None = None, db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(sales.daily_report(db, date))


@router.get("/{sale_id}")
def get_sale(sale_id: int, db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(sales.get_sale(db, sale_id))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_sale(
    payload: SaleCreate,
    db: Session = Depends(get_db),
    user: dict = Depends(require_role(ROLE_ADMIN, ROLE_EMPLOYEE)),
):
    return envelope(sales.create_sale(db, payload, user["id"]), "Venta registrada exitosamente")


@router.patch("/{sale_id}/cancel")
def cancel_sale(
    sale_id: int,
    payload: SaleCancel,
    db: Session = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    return envelope(sales.cancel_sale(db, sale_id, payload, admin["id"]), "Venta cancelada exitosamente")
