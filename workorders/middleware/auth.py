from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from workorders.db import get_db
from workorders.errors import Forbidden, Unauthorized
from workorders.models.user import User
from workorders.utils.enums import UserRole
from workorders.utils.tokens import read_access_token

PUBLIC_PATHS = ["/api/auth/login", "/api/auth/register"]

# Разделы, закрытые для роли (по префиксу пути)
ACCESS_MATRIX = {
    UserRole.PRODUCTION_MANAGER.value: ["*"],  # полный доступ
    UserRole.OPERATOR.value: [
        "/api/auth",
        "/api/operators",
        "/api/work-orders",
        "/api/reports/dashboard",
    ],
}


@dataclass
class CurrentUser:
    id: int
    username: str
    role: str

    @property
    def is_manager(self) -> bool:
        return self.role == UserRole.PRODUCTION_MANAGER.value


def _error(status_code: int, msg: str) -> JSONResponse:
    return JSONResponse({"error": True, "msg": msg}, status_code=status_code)


def is_allowed(role: str, path: str) -> bool:
    allowed_paths = ACCESS_MATRIX.get(role, [])
    return "*" in allowed_paths or any(path.startswith(p) for p in allowed_paths)


class AuthMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path.rstrip("/") or "/"

        # Проверяем только /api (кроме логина/регистрации)
        if not path.startswith("/api") or path in PUBLIC_PATHS:
            return await call_next(request)

        header = request.headers.get("Authorization")
        if not header:
            return _error(401, "Authorization header is required")
        if not header.startswith("Bearer "):
            return _error(401, "Invalid authorization format")

        claims = read_access_token(header[len("Bearer "):].strip())
        if claims is None:
            return _error(401, "Invalid or expired token")

        role = (claims.get("role") or "").strip().lower()
        if not is_allowed(role, path):
            return _error(403, "Access forbidden: insufficient permissions")

        request.state.user = CurrentUser(
            id=int(claims["user_id"]), username=claims.get("username", ""), role=role,
        )
        return await call_next(request)


def get_current_user(request: Request, db: Session = Depends(get_db)) -> CurrentUser:
    """Пользователь из токена; удалённый после выдачи токена: уже не пускаем."""
    current = getattr(request.state, "user", None)
    if current is None:
        raise Unauthorized()
    user = db.get(User, current.id)
    if user is None or user.is_deleted:
        raise Unauthorized("User no longer exists")
    return current


def require_manager(current: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not current.is_manager:
        raise Forbidden()
    return current


def require_operator(current: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if current.role != UserRole.OPERATOR.value:
        raise Forbidden()
    return current
