from pydantic import Field

from pos_api.schemas.common import InputModel, ListQuery


class LineItemIn(InputModel):
    product_id: int = Field(gt=0)
    quantity: float = Field(gt=0)
    unit_price: float = Field(gt=0)


class TenderIn(InputModel):
    method: str
    amount: float = Field(gt=0)


class SaleCreate(InputModel):
    items: list[LineItemIn] = Field(min_length=1)
    total: float = Field(gt=0)
    customer_id: int | None = Field(default=None, gt=0)
    payment_method: str | None = None
    payment_methods: list[TenderIn] | None = None
    notes: str | None = None


class SaleCancel(InputModel):
    reason: str | None = Field(default=None, max_length=255)


class SaleQuery(ListQuery):
    start_date: str | None = None
    end_date: str | None = None
    status: str | None = None
    customer_id: int | None = None
    payment_method: str | None = None
    search: str | None = None
