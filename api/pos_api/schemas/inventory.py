from pydantic import Field

from pos_api.schemas.common import InputModel, ListQuery


class ProductIn(InputModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    price: float = Field(gt=0)
    price_level_2: float | None = Field(default=None, gt=0)
    price_level_3: float | None = Field(default=None, gt=0)
    cost: float = Field(default=0, ge=0)
    min_stock: float | None = Field(default=None, ge=0)
    unit_type: str | None = None
    category_id: int | None = None
    barcode: str | None = Field(default=None, max_length=64)
    image: str | None = Field(default=None, max_length=500)


class ProductCreate(ProductIn):
    stock: float | None = Field(default=None, ge=0)


class ProductUpdate(ProductIn):
    active: bool | None = None


class ProductQuery(ListQuery):
    category: int | None = None
    active: str = "true"
    search: str | None = None
    stock_level: str | None = Field(default=None, alias="stockLevel")
    min_price: float | None = Field(default=None, alias="minPrice")
    max_price: float | None = Field(default=None, alias="maxPrice")
    min_stock: float | None = Field(default=None, alias="minStock")
    max_stock: float | None = Field(default=None, alias="maxStock")

    model_config = {"populate_by_name": True}


class StockMovementCreate(InputModel):
    product_id: int = Field(gt=0)
    type: str
    quantity: float | str
    reason: str = Field(min_length=1, max_length=255)


class MovementQuery(ListQuery):
    product_id: int | None = None
    type: str | None = None
    user_id: int | None = None
    start_date: str | None = None
    end_date: str | None = None
