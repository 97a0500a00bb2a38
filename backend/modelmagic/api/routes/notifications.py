"""In-app notification endpoints for the signed-in user."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query

from modelmagic.api import errors
from modelmagic.api.deps import Identity, get_identity, get_services
from modelmagic.models.contracts import ErrorResponse, NotificationView
from modelmagic.services.container import Services

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationView])
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    return await services.notifications.list_for_user(
        identity.user_id, unread_only=unread_only, limit=limit, offset=offset
    )


@router.get("/unread-count")
async def unread_count(
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> dict:
    return {"unread": await services.notifications.unread_count(identity.user_id)}


@router.post("/read-all")
async def mark_all_read(
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> dict:
    return {"updated": await services.notifications.mark_all_read(identity.user_id)}


@router.post(
    "/{notification_id}/read",
    responses={404: {"model": ErrorResponse}},
)
async def mark_read(
    notification_id: uuid.UUID,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    if not await services.notifications.mark_read(notification_id, identity.user_id):
        return errors.error(404, "notification_not_found", "Notification not found")
    return {"status": "ok"}
