import logging

from sqlalchemy import func, insert, text, update
from sqlalchemy.orm import Session

from pos_api.core.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from pos_api.core.security import ROLE_EMPLOYEE, create_access_token, get_password_hash, verify_password
from pos_api.db.schema import users
from pos_api.db.session import transaction
from pos_api.schemas.auth import ChangePasswordRequest, CreateUserRequest, RegisterRequest, UpdateUserRequest

logger = logging.getLogger(__name__)

PUBLIC_COLUMNS = "id, name, email, role, phone, active, last_login_at, created_at, updated_at"


def get_user(db: Session, user_id: int) -> dict:
    row = db.execute(
        text(f"SELECT {PUBLIC_COLUMNS} FROM users WHERE id = :id"), {"id": user_id}
    ).mappings().first()
    if not row:
        raise NotFoundError("Usuario no encontrado", code="USER_NOT_FOUND")
    return dict(row)


def get_active_user(db: Session, user_id: int) -> dict | None:
    row = db.execute(
        text(f"SELECT {PUBLIC_COLUMNS} FROM users WHERE id = :id AND active = :yes"),
        {"id": user_id, "yes": True},
    ).mappings().first()
    return dict(row) if row else None


def login(db: Session, email: str, password: str) -> dict:
    user = db.execute(
        text("SELECT id, name, email, role, password_hash, active FROM users WHERE email = :email LIMIT 1"),
        {"email": email.lower()},
    ).mappings().first()

    if not user or not user["active"] or not verify_password(password, user["password_hash"]):
        logger.warning("Failed login for %s", email)
        raise AuthenticationError("Credenciales inválidas", code="INVALID_CREDENTIALS")

    with transaction(db):
        db.execute(update(users).where(users.c.id == user["id"]).values(last_login_at=func.current_timestamp()))

    token = create_access_token(subject=str(user["id"]), role=user["role"])
    return {"token": token, "user": get_user(db, user["id"])}


def _ensure_unique_email(db: Session, email: str, exclude_id: int | None = None) -> None:
    existing = db.execute(
        text("SELECT id FROM users WHERE email = :email AND id != :exclude_id"),
        {"email": email, "exclude_id": exclude_id or 0},
    ).first()
    if existing:
        raise ConflictError("Ya existe un usuario con este email", code="EMAIL_EXISTS")


def create_user(db: Session, payload: RegisterRequest | CreateUserRequest) -> dict:
    email = payload.email.lower()
    _ensure_unique_email(db, email)
    role = getattr(payload, "role", ROLE_EMPLOYEE)
    with transaction(db):
        user_id = db.execute(
            insert(users).values(
                name=payload.name,
                email=email,
                password_hash=get_password_hash(payload.password),
                role=role,
                phone=payload.phone or None,
            )
        ).inserted_primary_key[0]
    logger.info("User %s created with role %s", user_id, role)
    return get_user(db, user_id)


def list_users(db: Session) -> list[dict]:
    rows = db.execute(text(f"SELECT {PUBLIC_COLUMNS} FROM users ORDER BY name ASC")).mappings().all()
    return [dict(row) for row in rows]


def update_user(db: Session, user_id: int, payload: UpdateUserRequest, acting_user_id: int) -> dict:
    get_user(db, user_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "email" in changes:
        changes["email"] = changes["email"].lower()
        _ensure_unique_email(db, changes["email"], exclude_id=user_id)
    if user_id == acting_user_id and changes.get("active") is False:
        raise ValidationError("No puedes desactivar tu propio usuario", code="CANNOT_DEACTIVATE_SELF")
    if changes:
        with transaction(db):
            db.execute(
                update(users)
                .where(users.c.id == user_id)
                .values(**changes, updated_at=func.current_timestamp())
            )
    return get_user(db, user_id)


def change_password(db: Session, user_id: int, payload: ChangePasswordRequest) -> None:
    row = db.execute(
        text("SELECT password_hash FROM users WHERE id = :id"), {"id": user_id}
    ).mappings().first()
    if not row or not verify_password(payload.current_password, row["password_hash"]):
        raise ValidationError("La contraseña actual es incorrecta", code="INVALID_CURRENT_PASSWORD")
    with transaction(db):
        db.execute(
            update(users)
            .where(users.c.id == user_id)
            .values(password_hash=get_password_hash(payload.new_password), updated_at=func.current_timestamp())
        )
    logger.info("User %s changed password", user_id)
