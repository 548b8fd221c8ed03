from typing import Literal

from pydantic import EmailStr, Field

from pos_api.schemas.common import InputModel, ListQuery


class CustomerIn(InputModel):
    name: str = Field(min_length=1, max_length=160)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=40)
    address: str | None = Field(default=None, max_length=255)
    document_number: str | None = Field(default=None, max_length=40)
    credit_limit: float = Field(default=0, ge=0)
    notes: str | None = None


class CustomerUpdate(CustomerIn):
    active: bool | None = None


class AccountTransactionCreate(InputModel):
    customer_id: int = Field(gt=0)
    type: Literal["debito", "credito"]
    amount: float = Field(gt=0)
    description: str | None = Field(default=None, max_length=255)


class CustomerQuery(ListQuery):
    active: str = "true"
    search: str | None = None
    with_balance: bool = False
