from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from pos_api.db.session import get_db
from pos_api.schemas.cash import CashClose, CashHistoryQuery, CashMovementCreate, CashMovementQuery, CashOpen, CashSettingsUpdate
from pos_api.schemas.common import envelope
from pos_api.services import cash
from pos_api.services.deps import get_current_user, require_admin

router = APIRouter(prefix="/cash", tags=["cash"])


@router.get("/status")
def cash_status(db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(cash.current_status(db))


@router.post("/open", status_code=status.HTTP_201_CREATED)
def open_cash(payload: CashOpen, db: Session = Depends(get_db), user: dict = Depends(get_current_user)):
    return envelope(cash.open_cash(db, payload, user["id"]), "Caja abierta exitosamente")


@router.post("/close")
def close_cash(payload: CashClose, db: Session = Depends(get_db), user: dict = Depends(get_current_user)):
    return envelope(cash.close_cash(db, payload, user["id"]), "Caja cerrada exitosamente")


@router.get("/movements")
def list_movements(
    query: Annotated[CashMovementQuery, Query()],
    db: Session = Depends(get_db),
    _: dict = Depends(get_current_user),
):
    return envelope(cash.list_movements(db, query))


@router.post("/movements", status_code=status.HTTP_201_CREATED)
def create_movement(payload: CashMovementCreate, db: Session = Depends(get_db), user: dict = Depends(get_current_user)):
    return envelope(cash.create_movement(db, payload, user["id"]), "Movimiento de caja registrado")


@router.get("/history")
def history(
    query: Annotated[CashHistoryQuery, Query()],
    db: Session = Depends(get_db),
    _: dict = Depends(get_current_user),
):
    return envelope(cash.history(db, query))


@router.get("/sessions/{session_id}")
def session_details(session_id: int, db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(cash.session_details(db, session_id))


@router.get("/settings")
def get_settings(db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(cash.get_settings(db))


@router.put("/settings")
def update_settings(payload: CashSettingsUpdate, db: Session = Depends(get_db), admin: dict = Depends(require_admin)):
    return envelope(cash.update_settings(db, payload, admin["id"]), "Configuración de caja actualizada")
