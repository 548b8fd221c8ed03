from pydantic import Field

from pos_api.schemas.common import InputModel


class CategoryIn(InputModel):
    name: str = Field(min_length=1, max_length=120)
    description: str | None = None
    color: str | None = Field(default=None, max_length=20)
    icon: str | None = Field(default=None, max_length=20)
    active: bool | None = None


class CategoryQuery(InputModel):
    active: str = "true"
    search: str | None = None
