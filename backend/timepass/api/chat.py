"""FastAPI endpoints for one-to-one messaging.

Domain errors propagate to the ChatError handler installed in `errors`.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from timepass.domain.chat.models import UserProfile
from timepass.domain.chat.schemas import (
	ConversationResponse,
	ConversationSummaryResponse,
	EditMessageRequest,
	MarkSeenRequest,
	MarkSeenResponse,
	MessageListResponse,
	MessageResponse,
	SendMessageRequest,
	StoryReplyRequest,
	UnreadCountResponse,
)
from timepass.domain.chat.service import ChatService, conversation_key, get_chat_service
from timepass.domain.chat.unread import resolve_strategy
from timepass.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/chat", tags=["chat"])


def _profile(user: AuthenticatedUser) -> UserProfile:
	return UserProfile(id=user.id, username=user.handle or user.display_name, avatar_url=user.avatar_url)


@router.post("/conversations/{peer_id}", response_model=ConversationResponse)
async def ensure_conversation_endpoint(
	peer_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ChatService = Depends(get_chat_service),
) -> ConversationResponse:
	conversation_id = await service.ensure_conversation(auth_user.id, peer_id)
	key = conversation_key(auth_user.id, peer_id)
	return ConversationResponse(conversation_id=conversation_id, participants=list(key.participants()))


@router.get("/conversations", response_model=List[ConversationSummaryResponse])
async def list_conversations_endpoint(
	strategy: Optional[str] = Query(default=None, pattern="^(coarse|precise)$"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ChatService = Depends(get_chat_service),
) -> List[ConversationSummaryResponse]:
	summaries = await service.list_conversations(auth_user.id, strategy=strategy)
	return [ConversationSummaryResponse.from_model(item) for item in summaries]


@router.get("/conversations/{peer_id}/messages", response_model=MessageListResponse)
async def list_messages_endpoint(
	peer_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ChatService = Depends(get_chat_service),
) -> MessageListResponse:
	conversation_id = conversation_key(auth_user.id, peer_id).conversation_id
	messages = await service.list_messages(conversation_id, auth_user.id)
	return MessageListResponse(
		conversation_id=conversation_id,
		items=[MessageResponse.from_model(item) for item in messages],
	)


@router.post(
	"/conversations/{peer_id}/messages",
	response_model=MessageResponse,
	status_code=status.HTTP_201_CREATED,
)
async def send_message_endpoint(
	peer_id: str,
	payload: SendMessageRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ChatService = Depends(get_chat_service),
) -> MessageResponse:
	message = await service.send_to_peer(auth_user.id, peer_id, payload.text, sender_profile=_profile(auth_user))
	return MessageResponse.from_model(message)


@router.patch("/conversations/{peer_id}/messages/{message_id}", response_model=MessageResponse)
async def edit_message_endpoint(
	peer_id: str,
	message_id: str,
	payload: EditMessageRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ChatService = Depends(get_chat_service),
) -> MessageResponse:
	conversation_id = conversation_key(auth_user.id, peer_id).conversation_id
	message = await service.edit_message(conversation_id, message_id, auth_user.id, payload.text)
	return MessageResponse.from_model(message)


@router.delete(
	"/conversations/{peer_id}/messages/{message_id}",
	status_code=status.HTTP_204_NO_CONTENT,
	response_class=Response,
)
async def delete_message_endpoint(
	peer_id: str,
	message_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ChatService = Depends(get_chat_service),
) -> Response:
	conversation_id = conversation_key(auth_user.id, peer_id).conversation_id
	await service.delete_message(conversation_id, message_id, auth_user.id)
	return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/conversations/{peer_id}/seen", response_model=MarkSeenResponse)
async def mark_seen_endpoint(
	peer_id: str,
	payload: MarkSeenRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ChatService = Depends(get_chat_service),
) -> MarkSeenResponse:
	conversation_id = conversation_key(auth_user.id, peer_id).conversation_id
	marked = await service.mark_seen(conversation_id, auth_user.id, payload.message_ids)
	return MarkSeenResponse(conversation_id=conversation_id, marked=marked)


@router.get("/unread", response_model=UnreadCountResponse)
async def unread_count_endpoint(
	strategy: Optional[str] = Query(default=None, pattern="^(coarse|precise)$"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ChatService = Depends(get_chat_service),
) -> UnreadCountResponse:
	choice = resolve_strategy(strategy)
	count = await service.get_unread_count(auth_user.id, strategy=choice)
	return UnreadCountResponse(count=count, strategy=choice)


@router.post(
	"/stories/{story_id}/replies",
	response_model=MessageResponse,
	status_code=status.HTTP_201_CREATED,
)
async def story_reply_endpoint(
	story_id: str,
	payload: StoryReplyRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ChatService = Depends(get_chat_service),
) -> MessageResponse:
	message = await service.reply_to_story(
		auth_user.id,
		payload.story_owner_id,
		story_id,
		payload.text,
		sender_profile=_profile(auth_user),
	)
	return MessageResponse.from_model(message)
