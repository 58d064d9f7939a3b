"""Pydantic schemas for the chat and notification APIs."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .models import ChatMessage, ConversationSummary, Notification


class SendMessageRequest(BaseModel):
	text: str = Field(..., description="Message body; surrounding whitespace is trimmed")


class EditMessageRequest(BaseModel):
	text: str


class StoryReplyRequest(BaseModel):
	story_owner_id: str = Field(..., min_length=1)
	text: str


class MarkSeenRequest(BaseModel):
	message_ids: List[str] = Field(default_factory=list)


class MarkSeenResponse(BaseModel):
	conversation_id: str
	marked: List[str]


class ConversationResponse(BaseModel):
	conversation_id: str
	participants: List[str]


class MessageResponse(BaseModel):
	id: str
	conversation_id: str
	text: str
	sender_id: str
	created_at: Optional[datetime] = None
	seen_by: List[str]
	seen_at: Optional[datetime] = None
	is_story_reply: bool = False
	story_id: Optional[str] = None
	is_edited: bool = False

	@classmethod
	def from_model(cls, message: ChatMessage) -> "MessageResponse":
		return cls(
			id=message.id,
			conversation_id=message.conversation_id,
			text=message.text,
			sender_id=message.sender_id,
			created_at=message.created_at,
			seen_by=list(message.seen_by),
			seen_at=message.seen_at,
			is_story_reply=message.is_story_reply,
			story_id=message.story_id,
			is_edited=message.is_edited,
		)


class MessageListResponse(BaseModel):
	conversation_id: str
	items: List[MessageResponse]


class ConversationSummaryResponse(BaseModel):
	conversation_id: str
	other_user_id: str
	other_username: Optional[str] = None
	other_avatar_url: Optional[str] = None
	last_message: Optional[str] = None
	last_message_at: Optional[datetime] = None
	last_message_sender: Optional[str] = None
	has_unread: bool = False
	relative_time: str = ""

	@classmethod
	def from_model(cls, summary: ConversationSummary) -> "ConversationSummaryResponse":
		return cls(
			conversation_id=summary.conversation_id,
			other_user_id=summary.other_user.id,
			other_username=summary.other_user.username,
			other_avatar_url=summary.other_user.avatar_url,
			last_message=summary.last_message,
			last_message_at=summary.last_message_at,
			last_message_sender=summary.last_message_sender,
			has_unread=summary.has_unread,
			relative_time=summary.relative_time,
		)


class UnreadCountResponse(BaseModel):
	count: int
	strategy: str


class NotificationResponse(BaseModel):
	id: str
	type: str
	sender_id: str
	sender_username: Optional[str] = None
	sender_avatar_url: Optional[str] = None
	message_preview: Optional[str] = None
	post_id: Optional[str] = None
	post_type: Optional[str] = None
	message: Optional[str] = None
	created_at: Optional[datetime] = None
	read: bool = False

	@classmethod
	def from_model(cls, notification: Notification) -> "NotificationResponse":
		return cls(
			id=notification.id,
			type=notification.type,
			sender_id=notification.sender_id,
			sender_username=notification.sender_username,
			sender_avatar_url=notification.sender_avatar_url,
			message_preview=notification.message_preview,
			post_id=notification.post_id,
			post_type=notification.post_type,
			message=notification.message,
			created_at=notification.created_at,
			read=notification.read,
		)


class NotificationListResponse(BaseModel):
	items: List[NotificationResponse]
