"""Chat domain exports."""

from .identity import ConversationKey, resolve_conversation_id
from .service import ChatService, get_chat_service, set_chat_service

__all__ = [
	"ChatService",
	"ConversationKey",
	"get_chat_service",
	"resolve_conversation_id",
	"set_chat_service",
]
