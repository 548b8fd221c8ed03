from typing import Literal

from pydantic import EmailStr, Field

from pos_api.schemas.common import InputModel

Role = Literal["admin", "empleado"]


class LoginRequest(InputModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RegisterRequest(InputModel):
    name: str = Field(min_length=1, max_length=120)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    phone: str | None = None


class CreateUserRequest(RegisterRequest):
    role: Role = "empleado"


class UpdateUserRequest(InputModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    email: EmailStr | None = None
    role: Role | None = None
    phone: str | None = None
    active: bool | None = None


class ChangePasswordRequest(InputModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6, max_length=128)
