from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer
from passlib.context import CryptContext

from config import get_settings

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.secret_key, salt="access-token")


def create_access_token(user_id: str, email: str) -> str:
    return _serializer().dumps({"uid": user_id, "email": email})


def read_access_token(token: str, max_age_secs: Optional[int] = None) -> Optional[str]:
    """Return the user id carried by ``token``, or None when it is forged or expired."""
    if max_age_secs is None:
        max_age_secs = get_settings().token_max_age_secs
    try:
        data = _serializer().loads(token, max_age=max_age_secs)
    except BadSignature:
        return None
    if not isinstance(data, dict):
        return None
    user_id = data.get("uid")
    if not isinstance(user_id, str) or not user_id:
        return None
    return user_id
