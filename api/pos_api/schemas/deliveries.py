from pydantic import Field

from pos_api.schemas.common import InputModel, ListQuery
from pos_api.schemas.sales import LineItemIn, TenderIn


class DeliveryCreate(InputModel):
    items: list[LineItemIn] = Field(min_length=1)
    total: float = Field(gt=0)
    customer_id: int = Field(gt=0)
    driver_id: int = Field(gt=0)
    notes: str | None = None
    payment_method: str | None = None
    payment_methods: list[TenderIn] | None = None


class DeliveryStatusUpdate(InputModel):
    status: str
    notes: str | None = None
    latitude: float | str | None = None
    longitude: float | str | None = None


class DeliveryQuery(ListQuery):
    start_date: str | None = None
    end_date: str | None = None
    status: str | None = None
    customer_id: int | None = None
    search: str | None = None
