from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from pos_api.db.session import get_db
from pos_api.schemas.auth import (
    ChangePasswordRequest,
    CreateUserRequest,
    LoginRequest,
    RegisterRequest,
    UpdateUserRequest,
)
from pos_api.schemas.common import envelope
from pos_api.services import users
from pos_api.services.deps import get_current_user, require_admin

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login")
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    return envelope(users.login(db, payload.email, payload.password), "Inicio de sesión exitoso")


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    return envelope(users.create_user(db, payload), "Usuario registrado exitosamente")


@router.get("/profile")
def profile(user: dict = Depends(get_current_user), db: Session = Depends(get_db)):
    return envelope(users.get_user(db, user["id"]))


@router.post("/change-password")
def change_password(
    payload: ChangePasswordRequest,
    db: Session = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    users.change_password(db, user["id"], payload)
    return envelope(message="Contraseña actualizada exitosamente")


@router.get("/users")
def list_users(db: Session = Depends(get_db), _: dict = Depends(require_admin)):
    return envelope(users.list_users(db))


@router.post("/users", status_code=status.HTTP_201_CREATED)
def create_user(payload: CreateUserRequest, db: Session = Depends(get_db), _: dict = Depends(require_admin)):
    return envelope(users.create_user(db, payload), "Usuario creado exitosamente")


@router.put("/users/{user_id}")
def update_user(
    user_id: int,
    payload: UpdateUserRequest,
    db: Session = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    return envelope(users.update_user(db, user_id, payload, admin["id"]), "Usuario actualizado exitosamente")
