from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from pos_api.db.session import get_db
from pos_api.schemas.common import ListQuery, envelope
from pos_api.schemas.customers import AccountTransactionCreate, CustomerIn, CustomerQuery, CustomerUpdate
from pos_api.services import customers
from pos_api.services.deps import get_current_user, require_admin

router = APIRouter(prefix="/customers", tags=["customers"])


@router.get("")
def list_customers(
    query: Annotated[CustomerQuery, Query()],
    db: Session = Depends(get_db),
    _: dict = Depends(get_current_user),
):
    return envelope(customers.list_customers(db, query))


@router.get("/stats")
def customer_stats(db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(customers.customer_stats(db))


@router.post("/transactions", status_code=status.HTTP_201_CREATED)
def create_transaction(
    payload: AccountTransactionCreate,
    db: Session = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return envelope(customers.create_account_transaction(db, payload, user["id"]), "Transacción registrada exitosamente")


@router.get("/{customer_id}")
def get_customer(customer_id: int, db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(customers.get_customer(db, customer_id))


@router.get("/{customer_id}/balance")
def customer_balance(customer_id: int, db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(customers.customer_balance(db, customer_id))


@router.get("/{customer_id}/transactions")
def list_transactions(
    customer_id: int,
    query: Annotated[ListQuery, Query()],
    db: Session = Depends(get_db),
    _: dict = Depends(get_current_user),
):
    return envelope(customers.list_transactions(db, customer_id, query))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_customer(payload: CustomerIn, db: Session = Depends(get_db), _: dict = Depends(get_current_user)):
    return envelope(customers.create_customer(db, payload), "Cliente creado exitosamente")


@router.put("/{customer_id}")
def update_customer(
    customer_id: int,
    payload: CustomerUpdate,
    db: Session = Depends(get_db),
    _: dict = Depends(require_admin),
):
    return envelope(customers.update_customer(db, customer_id, payload), "Cliente actualizado exitosamente")


@router.delete("/{customer_id}")
def delete_customer(customer_id: int, db: Session = Depends(get_db), _: dict = Depends(require_admin)):
    customers.delete_customer(db, customer_id)
    return envelope(message="Cliente eliminado exitosamente")
