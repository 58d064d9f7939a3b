"""Deterministic conversation identity for one-to-one chats."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

SEPARATOR = "_"


def resolve_conversation_id(user_one: str, user_two: str) -> str:
	"""Return the shared conversation id for an unordered pair of users.

	The ids are sorted lexicographically and joined with ``_`` so both
	participants derive the same value regardless of who initiates.
	"""
	return ConversationKey.from_participants(user_one, user_two).conversation_id


@dataclass(frozen=True, slots=True)
class ConversationKey:
	"""Canonical representation of a 1:1 chat conversation."""

	user_a: str
	user_b: str

	@classmethod
	def from_participants(cls, user_one: str, user_two: str) -> "ConversationKey":
		ordered = sorted((str(user_one), str(user_two)))
		return cls(user_a=ordered[0], user_b=ordered[1])

	@property
	def conversation_id(self) -> str:
		return f"{self.user_a}{SEPARATOR}{self.user_b}"

	@property
	def is_self(self) -> bool:
		return self.user_a == self.user_b

	def participants(self) -> Tuple[str, str]:
		return (self.user_a, self.user_b)
