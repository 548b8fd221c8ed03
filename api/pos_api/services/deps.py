from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from pos_api.core.errors import AuthenticationError, PermissionDeniedError
from pos_api.core.security import ROLE_ADMIN, ROLES, TokenExpired, decode_access_token
from pos_api.db.session import get_db
from pos_api.services.users import get_active_user

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def get_current_user(token: str | None = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> dict:
    if not token:
        raise AuthenticationError("Token de acceso requerido", code="NO_TOKEN")
    try:
        payload = decode_access_token(token)
        user_id = int(payload.get("sub"))
    except TokenExpired:
        raise PermissionDeniedError("Tu sesión ha expirado. Inicia sesión nuevamente.", code="TOKEN_EXPIRED")
    except (ValueError, TypeError):
        raise PermissionDeniedError("Token malformado", code="MALFORMED_TOKEN")

    user = get_active_user(db, user_id)
    if not user:
        raise AuthenticationError("Token inválido o usuario inactivo", code="INVALID_TOKEN")
    return user


def require_role(*roles: str):
    allowed = roles or ROLES

    def checker(user: dict = Depends(get_current_user)) -> dict:
        if user["role"] not in allowed:
            raise PermissionDeniedError("Acceso denegado. No tienes permisos suficientes")
        return user

    return checker


def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user["role"] != ROLE_ADMIN:
        raise PermissionDeniedError("Acceso denegado. Se requieren permisos de administrador")
    return user
