from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from workorders import config

_SALT = "access-token"


def _serializer(secret_key: Optional[str] = None) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key or config.SECRET_KEY, salt=_SALT)


def make_access_token(user_id: int, username: str, role: str) -> str:
    # Подписанный токен (не шифрованный!): внутри только id, имя и роль
    return _serializer().dumps({"user_id": user_id, "username": username, "role": role})


def read_access_token(token: str, max_age_hours: Optional[int] = None) -> Optional[dict]:
    """Возвращает claims или None, если подпись неверна / токен просрочен."""
    hours = max_age_hours if max_age_hours is not None else config.TOKEN_EXPIRES_IN
    try:
        claims = _serializer().loads(token, max_age=hours * 3600)
    except (SignatureExpired, BadSignature):
        return None
    if not isinstance(claims, dict) or "user_id" not in claims or "role" not in claims:
        return None
    return claims
