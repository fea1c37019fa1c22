"""FastAPI dependency utilities."""

from collections.abc import Generator

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from clinic_notify.container import NotificationServices
from clinic_notify.domain.entities import Identity
from clinic_notify.infrastructure.security import identity_from_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/token")


def resolve_identity(token: str) -> Identity:
    """Resolve the authenticated identity for the provided token."""

    try:
        return identity_from_token(token)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


def get_current_identity(token: str = Depends(oauth2_scheme)) -> Identity:
    return resolve_identity(token)


def get_services(request: Request) -> NotificationServices:
    return request.app.state.notification_services


def get_db(services: NotificationServices = Depends(get_services)) -> Generator:
    """Yield a database session and close it afterwards."""

    db = services.session_factory()
    try:
        yield db
    finally:
        db.close()

