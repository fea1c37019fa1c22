"""Identity token helpers shared by the HTTP and websocket edges."""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from clinic_notify.config import get_settings
from clinic_notify.domain.entities import Identity

ALGORITHM = "HS256"


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    return jwt.encode({**data, "exp": expire}, settings.secret_key, algorithm=ALGORITHM)


def create_identity_token(identity: Identity, expires_delta: timedelta | None = None) -> str:
    return create_access_token({"sub": identity.user_id, "role": identity.role}, expires_delta)


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(token, get_settings().secret_key, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise ValueError("Could not validate credentials") from exc


def identity_from_token(token: str) -> Identity:
    """Return the :class:`Identity` carried by ``token`` or raise ``ValueError``."""

    payload = decode_access_token(token)
    user_id = payload.get("sub")
    role = payload.get("role")
    if not user_id or not isinstance(role, str) or not role:
        raise ValueError("Token does not carry a user id and role")
    return Identity(user_id=str(user_id), role=role)
