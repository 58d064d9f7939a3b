"""Domain models for one-to-one messaging."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from timepass.infra.store import Document

from .instants import to_instant

CHATS = "chats"
NOTIFICATIONS = "notifications"
USERS = "users"

NOTIFICATION_MESSAGE = "message"
NOTIFICATION_LIKE = "like"


def chat_path(conversation_id: str) -> str:
	return f"{CHATS}/{conversation_id}"


def messages_collection(conversation_id: str) -> str:
	return f"{CHATS}/{conversation_id}/messages"


def message_path(conversation_id: str, message_id: str) -> str:
	return f"{messages_collection(conversation_id)}/{message_id}"


@dataclass(slots=True)
class Conversation:
	id: str
	participants: Tuple[str, ...]
	created_at: Optional[datetime] = None
	last_message: Optional[str] = None
	last_message_at: Optional[datetime] = None
	last_message_sender: Optional[str] = None

	@classmethod
	def from_document(cls, doc: Document) -> "Conversation":
		data = doc.data
		return cls(
			id=doc.id,
			participants=tuple(str(item) for item in data.get("participants") or ()),
			created_at=to_instant(data.get("created_at")),
			last_message=data.get("last_message"),
			last_message_at=to_instant(data.get("last_message_at")),
			last_message_sender=data.get("last_message_sender"),
		)

	def other_participant(self, user_id: str) -> Optional[str]:
		for participant in self.participants:
			if participant != user_id:
				return participant
		return None

	def has_participant(self, user_id: str) -> bool:
		return user_id in self.participants


@dataclass(slots=True)
class ChatMessage:
	id: str
	conversation_id: str
	text: str
	sender_id: str
	created_at: Optional[datetime]
	seen_by: Tuple[str, ...] = ()
	seen_at: Optional[datetime] = None
	is_story_reply: bool = False
	story_id: Optional[str] = None
	is_edited: bool = False

	@classmethod
	def from_document(cls, conversation_id: str, doc: Document) -> "ChatMessage":
		data = doc.data
		return cls(
			id=doc.id,
			conversation_id=conversation_id,
			text=str(data.get("text") or ""),
			sender_id=str(data.get("sender_id") or ""),
			created_at=to_instant(data.get("created_at")),
			seen_by=tuple(str(item) for item in data.get("seen_by") or ()),
			seen_at=to_instant(data.get("seen_at")),
			is_story_reply=bool(data.get("is_story_reply", False)),
			story_id=data.get("story_id"),
			is_edited=bool(data.get("is_edited", False)),
		)

	def is_seen_by(self, user_id: str) -> bool:
		return user_id in self.seen_by

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"conversation_id": self.conversation_id,
			"text": self.text,
			"sender_id": self.sender_id,
			"created_at": self.created_at.isoformat() if self.created_at else None,
			"seen_by": list(self.seen_by),
			"seen_at": self.seen_at.isoformat() if self.seen_at else None,
			"is_story_reply": self.is_story_reply,
			"story_id": self.story_id,
			"is_edited": self.is_edited,
		}


@dataclass(slots=True)
class UserProfile:
	id: str
	username: Optional[str] = None
	avatar_url: Optional[str] = None

	@classmethod
	def from_document(cls, doc: Document) -> "UserProfile":
		return cls(
			id=doc.id,
			username=doc.data.get("username"),
			avatar_url=doc.data.get("avatar_url") or doc.data.get("profile_pic"),
		)


@dataclass(slots=True)
class ConversationSummary:
	"""Conversation list entry from one viewer's perspective."""

	conversation_id: str
	other_user: UserProfile
	last_message: Optional[str]
	last_message_at: Optional[datetime]
	last_message_sender: Optional[str]
	has_unread: bool = False
	relative_time: str = ""


@dataclass(slots=True)
class Notification:
	id: str
	user_id: str
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
	def from_document(cls, doc: Document) -> "Notification":
		data = doc.data
		return cls(
			id=doc.id,
			user_id=str(data.get("user_id") or ""),
			type=str(data.get("type") or ""),
			sender_id=str(data.get("sender_id") or ""),
			sender_username=data.get("sender_username"),
			sender_avatar_url=data.get("sender_avatar_url"),
			message_preview=data.get("message_preview"),
			post_id=data.get("post_id"),
			post_type=data.get("post_type"),
			message=data.get("message"),
			created_at=to_instant(data.get("created_at")),
			read=bool(data.get("read", False)),
		)
