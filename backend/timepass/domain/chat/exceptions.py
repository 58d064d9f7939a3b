"""Domain-level exceptions for one-to-one messaging."""

from __future__ import annotations


class ChatError(Exception):
	"""Base class for messaging errors."""

	reason: str = "unknown"

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


class ValidationError(ChatError):
	"""Rejected before any store call (empty text, missing ids, self DM)."""

	reason = "invalid"


class StoreUnavailable(ChatError):
	reason = "store_unavailable"


class PermissionDenied(ChatError):
	reason = "forbidden"


class MessageNotFound(ChatError):
	reason = "message_not_found"


class NotificationWriteFailure(ChatError):
	"""Recorded when a notification write fails; never raised to senders."""

	reason = "notification_write_failed"


class ConversationNotFound(ChatError):
	reason = "conversation_not_found"


class NotificationNotFound(ChatError):
	reason = "notification_not_found"
