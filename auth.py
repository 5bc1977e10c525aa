from typing import Optional

import bcrypt
from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings

# bcrypt only reads the first 72 bytes of a password.
_BCRYPT_MAX_BYTES = 72


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.secret_key, salt="access-token")


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(user_id: int) -> str:
    return _serializer().dumps({"u": user_id})


def read_access_token(token: str, max_age_hours: Optional[int] = None) -> Optional[int]:
    """Return the user id carried by ``token`` or ``None`` if it is invalid or expired."""
    if max_age_hours is None:
        max_age_hours = get_settings().token_max_age_hours
    try:
        data = _serializer().loads(token, max_age=max_age_hours * 3600)
    except BadSignature:
        return None
    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, int):
        return None
    return user_id
