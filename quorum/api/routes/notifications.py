"""
quorum.api.routes.notifications — Notification inbox & live stream
====================================================================
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from quorum.api.deps import (
    CurrentUser,
    decode_user_id,
    get_notifier,
    get_registry,
)
from quorum.services.notification_service import NotificationService
from quorum.services.push_hub import ConnectionRegistry

router = APIRouter(prefix="/notifications", tags=["notifications"])
logger = logging.getLogger(__name__)

Notifier = Annotated[NotificationService, Depends(get_notifier)]


# ---------------------------------------------------------------------------
# GET /notifications
# ---------------------------------------------------------------------------
@router.get("")
async def list_notifications(
    user_id: CurrentUser,
    notifier: Notifier,
    unread_only: bool = False,
    limit: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
):
    return await notifier.list_notifications(
        user_id, unread_only=unread_only, limit=limit, offset=offset
    )


@router.get("/unread-count")
async def unread_count(user_id: CurrentUser, notifier: Notifier):
    return {"count": await notifier.unread_count(user_id)}


# ---------------------------------------------------------------------------
# Read state
# ---------------------------------------------------------------------------
@router.put("/{notification_id}/read")
async def mark_read(notification_id: int, user_id: CurrentUser, notifier: Notifier):
    return await notifier.mark_read(notification_id, user_id)


@router.put("/read-all")
async def mark_all_read(user_id: CurrentUser, notifier: Notifier):
    updated = await notifier.mark_all_read(user_id)
    return {"updated": updated}


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: int, user_id: CurrentUser, notifier: Notifier
):
    await notifier.delete_notification(notification_id, user_id)


# ---------------------------------------------------------------------------
# GET /notifications/stream — Server-Sent Events
# ---------------------------------------------------------------------------
@router.get("/stream")
async def stream(
    notifier: Notifier,
    registry: Annotated[ConnectionRegistry, Depends(get_registry)],
    authorization: Annotated[str | None, Header()] = None,
    token: str | None = None,
):
    """Long-lived event stream.

    ``EventSource`` cannot send headers, so the token may also be passed
    as ``?token=``.
    """
    if authorization and authorization.startswith("Bearer "):
        user_id = decode_user_id(authorization.split(" ", 1)[1])
    elif token:
        user_id = decode_user_id(token)
    else:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")

    conn = await notifier.open_stream(user_id)
    return StreamingResponse(
        registry.stream(conn),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
