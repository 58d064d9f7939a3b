"""Notification feed endpoints (message notifications are excluded)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from timepass.domain.chat.schemas import NotificationListResponse, NotificationResponse, UnreadCountResponse
from timepass.domain.chat.service import ChatService, get_chat_service
from timepass.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications_endpoint(
	limit: int = Query(default=50, ge=1, le=200),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ChatService = Depends(get_chat_service),
) -> NotificationListResponse:
	items = await service.list_notifications(auth_user.id, limit=limit)
	return NotificationListResponse(items=[NotificationResponse.from_model(item) for item in items])


@router.get("/unread", response_model=UnreadCountResponse)
async def unread_notifications_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ChatService = Depends(get_chat_service),
) -> UnreadCountResponse:
	count = await service.unread_notifications(auth_user.id)
	return UnreadCountResponse(count=count, strategy="notifications")


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read_endpoint(
	notification_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ChatService = Depends(get_chat_service),
) -> NotificationResponse:
	notification = await service.mark_notification_read(auth_user.id, notification_id)
	return NotificationResponse.from_model(notification)
