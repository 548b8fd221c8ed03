from typing import Any

from pydantic import BaseModel, ConfigDict


class InputModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


class ListQuery(BaseModel):
    """Query-string pagination; bad values fall back to defaults instead of failing."""

    page: str | None = None
    limit: str | None = None


def envelope(data: Any = None, message: str | None = None) -> dict:
    body: dict = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body
