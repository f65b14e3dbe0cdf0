import time
from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings
from errors import Unauthorized


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.auth_secret, salt="zbb-auth-token")


def issue_token(user_id: int, max_age_hours: Optional[int] = None) -> str:
    if max_age_hours is None:
        max_age_hours = get_settings().token_max_age_hours
    timestamp = int(time.time())
    expiry = timestamp + (max_age_hours * 3600)

    token_data = {"u": user_id, "ts": timestamp, "exp": expiry}

    return _serializer().dumps(token_data)


def resolve_user(token: Optional[str]) -> int:
    """Return the user id carried by ``token`` or raise :class:`Unauthorized`."""
    if not token:
        raise Unauthorized("Authentication required")
    max_age = get_settings().token_max_age_hours * 3600
    try:
        data = _serializer().loads(token, max_age=max_age)
    except SignatureExpired as exc:
        raise Unauthorized("Token expired") from exc
    except BadSignature as exc:
        raise Unauthorized("Invalid token") from exc

    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, int) or isinstance(user_id, bool) or user_id <= 0:
        raise Unauthorized("Invalid token")

    if int(time.time()) > data.get("exp", 0):
        raise Unauthorized("Token expired")

    return user_id


def bearer_token(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()
