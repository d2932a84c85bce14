"""Notification inbox and the live socket that mirrors it."""

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from jose import JWTError
from libs.auth.dependencies import decode_token, get_current_user
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from pydantic import ValidationError
from services.orders_service.schemas import (
    ActionResponse,
    NotificationListResponse,
    NotificationResponse,
)
from services.orders_service.services.fanout import (
    list_notifications,
    mark_notifications_read,
)
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

router = APIRouter(tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def get_notifications(
    limit: int = Query(50, ge=1, le=200),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    notifications, unread = await list_notifications(db, current_user, limit=limit)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=unread,
    )


@router.post("/read", response_model=ActionResponse)
async def mark_all_read(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    updated = await mark_notifications_read(db, current_user)
    return ActionResponse(message=f"{updated} notifications marked as read")


@router.websocket("/ws")
async def notifications_socket(websocket: WebSocket, token: str = Query(...)):
    """Register the socket for live pushes until the client goes away."""
    try:
        user = decode_token(token)
    except (JWTError, ValidationError):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    directory = websocket.app.state.directory
    await websocket.accept()
    directory.register(user.user_id, websocket)
    try:
        # Incoming frames are only keepalives
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Socket closed for %s", user.user_id)
    finally:
        directory.unregister(user.user_id, websocket)
