from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from pos_api.db.session import get_db
from pos_api.schemas.common import envelope
from pos_api.schemas.deliveries import DeliveryCreate, DeliveryQuery, DeliveryStatusUpdate
from pos_api.services import deliveries
from pos_api.services.deps import get_current_user

router = APIRouter(prefix="/deliveries", tags=["deliveries"])


@router.get("")
def list_deliveries(
    query: Annotated[DeliveryQuery, Query()],
    db: Session = Depends(get_db),
    _: dict = Depends(get_current_user),
):
    return envelope(deliveries.list_deliveries(db, query))


@router.get("/stats")
def delivery_stats(period: str = "today", db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(deliveries.delivery_stats(db, period))


@router.get("/driver/{driver_id}")
def driver_deliveries(
    driver_id: int,
    status_filter: Annotated[str | None, Query(alias="status")] = deliveries.PENDING,
    db: Session = Depends(get_db),
    _: dict = Depends(get_current_user),
):
    return envelope(deliveries.driver_deliveries(db, driver_id, status_filter))


@router.get("/{delivery_id}")
def get_delivery(delivery_id: int, db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(deliveries.get_delivery(db, delivery_id))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_delivery(payload: DeliveryCreate, db: Session = Depends(get_db), user: dict = Depends(get_current_user)):
    return envelope(deliveries.create_delivery(db, payload, user["id"]), "Reparto creado exitosamente")


@router.patch("/{delivery_id}/status")
def update_status(
    delivery_id: int,
    payload: DeliveryStatusUpdate,
    db: Session = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return envelope(deliveries.update_status(db, delivery_id, payload, user["id"]), "Estado del reparto actualizado")
