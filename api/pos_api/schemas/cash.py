from typing import Literal

from pydantic import Field

from pos_api.schemas.common import InputModel, ListQuery


class CashOpen(InputModel):
    opening_amount: float = Field(ge=0)
    notes: str | None = None


class CashClose(InputModel):
    closing_amount: float = Field(ge=0)
    notes: str | None = None


class CashMovementCreate(InputModel):
    type: Literal["ingreso", "egreso"]
    amount: float = Field(gt=0)
    description: str = Field(min_length=1, max_length=255)


class CashSettingsUpdate(InputModel):
    min_opening_amount: float | None = Field(default=None, ge=0)
    require_open_session: bool | None = None


class CashHistoryQuery(ListQuery):
    start_date: str | None = None
    end_date: str | None = None


class CashMovementQuery(ListQuery):
    session_id: int | None = None
    type: str | None = None
