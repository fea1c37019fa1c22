"""Endpoints and websocket handler for recipient notifications."""

from __future__ import annotations

import logging

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    Response,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from sqlalchemy.orm import Session

from clinic_notify.application.use_cases.notifications import (
    delete_notification,
    get_notifications,
    get_unread_count,
    mark_all_as_read,
    mark_as_read,
)
from clinic_notify.domain.entities import OPEN_STATUSES, Identity, Notification
from clinic_notify.infrastructure.notifications import serialize_notification
from clinic_notify.infrastructure.repositories import NotificationRepository
from clinic_notify.interfaces.api.dependencies import (
    get_current_identity,
    get_db,
    resolve_identity,
)
from clinic_notify.interfaces.api.schemas import (
    NotificationPage,
    NotificationRead,
    NotificationResponse,
    Pagination,
    UnreadCount,
    UnreadCountResponse,
    UpdatedCount,
    UpdatedCountResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])

_INIT_LIMIT = 50


def _notification_to_schema(notification: Notification) -> NotificationRead:
    return NotificationRead(**serialize_notification(notification))


@router.get("/", response_model=NotificationPage)
def list_notifications(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> NotificationPage:
    """Return one page of the caller's notifications, newest first."""

    notifications = get_notifications(
        db, identity.user_id, skip=(page - 1) * page_size, take=page_size
    )
    return NotificationPage(
        data=[_notification_to_schema(notification) for notification in notifications],
        pagination=Pagination(page=page, page_size=page_size),
        unread_count=get_unread_count(db, identity.user_id),
    )


@router.get("/unread", response_model=UnreadCountResponse)
def unread_count(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> UnreadCountResponse:
    return UnreadCountResponse(data=UnreadCount(unread=get_unread_count(db, identity.user_id)))


@router.patch("/read-all", response_model=UpdatedCountResponse)
def read_all(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> UpdatedCountResponse:
    updated = mark_all_as_read(db, identity.user_id)
    return UpdatedCountResponse(data=UpdatedCount(updated=updated))


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def read_notification(
    notification_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> NotificationResponse:
    notification = mark_as_read(db, notification_id, identity.user_id)
    if notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return NotificationResponse(data=_notification_to_schema(notification))


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_notification(
    notification_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> Response:
    delete_notification(db, notification_id, identity.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.websocket("/ws")
async def notifications_websocket(websocket: WebSocket) -> None:
    """Websocket endpoint that streams notifications to the authenticated employee."""

    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=1008)
        return

    try:
        identity = resolve_identity(token)
    except HTTPException:
        await websocket.close(code=1008)
        return

    services = websocket.app.state.notification_services
    session = services.session_factory()
    try:
        open_notifications = NotificationRepository(session).list_for_recipient(
            identity.user_id, take=_INIT_LIMIT, statuses=OPEN_STATUSES
        )
    finally:
        session.close()

    registry = services.registry
    await websocket.accept()
    registry.register(websocket, identity)
    try:
        await websocket.send_json(
            {"type": "init", "data": [serialize_notification(n) for n in open_notifications]}
        )
        while True:
            try:
                message = await websocket.receive_json()
            except WebSocketDisconnect:
                raise
            except Exception:  # noqa: BLE001 - malformed frames are ignored
                continue
            if not isinstance(message, dict):
                continue

            message_type = message.get("type")
            if message_type == "ping":
                await websocket.send_json({"type": "pong"})
            elif message_type == "ack":
                _acknowledge(services, identity, message.get("ids"))
    except WebSocketDisconnect:
        pass
    finally:
        registry.unregister(websocket, identity)


def _acknowledge(services, identity: Identity, ids) -> None:
    if not isinstance(ids, list) or not ids:
        return
    session = services.session_factory()
    try:
        for notification_id in ids:
            mark_as_read(session, str(notification_id), identity.user_id)
    finally:
        session.close()
