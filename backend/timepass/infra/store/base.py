"""Document store contract shared by the memory and Redis backends.

The messaging domain only ever talks to this surface: per-document
create/read/update/delete addressed by slash-separated paths, atomic
field transforms, filtered queries over a single collection and live
watches that redeliver the full match set after every change.
"""

from __future__ import annotations

import copy
import dataclasses
import inspect
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import (
	Any,
	Awaitable,
	Callable,
	Dict,
	Iterable,
	List,
	Mapping,
	Optional,
	Protocol,
	Tuple,
	Union,
)

import ulid


class StoreError(Exception):
	"""Base class for document store failures."""

	reason: str = "store_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.reason)


class StoreUnavailableError(StoreError):
	reason = "store_unavailable"


class DocumentNotFound(StoreError):
	reason = "document_not_found"

	def __init__(self, path: str) -> None:
		super().__init__(path)
		self.path = path


class _ServerTimestamp:
	_instance: Optional["_ServerTimestamp"] = None

	def __new__(cls) -> "_ServerTimestamp":
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	def __repr__(self) -> str:
		return "SERVER_TIMESTAMP"

	def __deepcopy__(self, memo: dict) -> "_ServerTimestamp":
		return self


# Resolved to the store clock at write time.
SERVER_TIMESTAMP = _ServerTimestamp()


class ArrayUnion:
	"""Set-add: append each value not already present."""

	__slots__ = ("values",)

	def __init__(self, values: Iterable[Any]) -> None:
		self.values: Tuple[Any, ...] = tuple(values)

	def __repr__(self) -> str:
		return f"ArrayUnion({list(self.values)!r})"


class ArrayRemove:
	"""Set-difference: drop every occurrence of the given values."""

	__slots__ = ("values",)

	def __init__(self, values: Iterable[Any]) -> None:
		self.values: Tuple[Any, ...] = tuple(values)

	def __repr__(self) -> str:
		return f"ArrayRemove({list(self.values)!r})"


class Increment:
	__slots__ = ("amount",)

	def __init__(self, amount: Union[int, float] = 1) -> None:
		self.amount = amount

	def __repr__(self) -> str:
		return f"Increment({self.amount!r})"


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


def new_document_id() -> str:
	return str(ulid.new())


def split_path(path: str) -> Tuple[str, str]:
	"""Split `collection/.../doc_id` into (collection path, document id)."""
	parts = [part for part in (path or "").split("/") if part]
	if len(parts) < 2 or len(parts) % 2:
		raise ValueError(f"invalid document path: {path!r}")
	return "/".join(parts[:-1]), parts[-1]


def join_path(collection: str, doc_id: str) -> str:
	return f"{collection.strip('/')}/{doc_id}"


def apply_changes(current: Mapping[str, Any], changes: Mapping[str, Any], now: datetime) -> Dict[str, Any]:
	"""Return a new document body with plain values and transforms applied."""
	result: Dict[str, Any] = copy.deepcopy(dict(current))
	for key, change in changes.items():
		if change is SERVER_TIMESTAMP:
			result[key] = now
		elif isinstance(change, ArrayUnion):
			existing = list(result.get(key) or [])
			for value in change.values:
				if value not in existing:
					existing.append(value)
			result[key] = existing
		elif isinstance(change, ArrayRemove):
			result[key] = [value for value in (result.get(key) or []) if value not in change.values]
		elif isinstance(change, Increment):
			result[key] = (result.get(key) or 0) + change.amount
		else:
			result[key] = copy.deepcopy(change)
	return result


@dataclass(slots=True)
class Document:
	id: str
	path: str
	data: Dict[str, Any]

	def get(self, key: str, default: Any = None) -> Any:
		return self.data.get(key, default)


_OPERATORS = frozenset({"==", "!=", "array_contains", "in"})


@dataclass(frozen=True, slots=True)
class Filter:
	field: str
	op: str
	value: Any

	def __post_init__(self) -> None:
		if self.op not in _OPERATORS:
			raise ValueError(f"unsupported operator: {self.op}")

	def matches(self, data: Mapping[str, Any]) -> bool:
		actual = data.get(self.field)
		if self.op == "==":
			return actual == self.value
		if self.op == "!=":
			return actual != self.value
		if self.op == "array_contains":
			return isinstance(actual, (list, tuple)) and self.value in actual
		return actual in self.value


@dataclass(frozen=True, slots=True)
class Query:
	collection: str
	filters: Tuple[Filter, ...] = ()
	order_by: Optional[str] = None
	descending: bool = False
	limit: Optional[int] = None

	def where(self, field: str, op: str, value: Any) -> "Query":
		return dataclasses.replace(self, filters=self.filters + (Filter(field, op, value),))

	def ordered(self, field: str, *, descending: bool = False) -> "Query":
		return dataclasses.replace(self, order_by=field, descending=descending)

	def matches(self, data: Mapping[str, Any]) -> bool:
		return all(item.matches(data) for item in self.filters)

	def apply(self, documents: Iterable[Document]) -> List[Document]:
		"""Filter, order (absent values last, ties by id) and limit."""
		matched = sorted((doc for doc in documents if self.matches(doc.data)), key=lambda doc: doc.id)
		if self.order_by is not None:
			field = self.order_by
			present = [doc for doc in matched if doc.data.get(field) is not None]
			absent = [doc for doc in matched if doc.data.get(field) is None]
			present.sort(key=lambda doc: doc.data[field], reverse=self.descending)
			matched = present + absent
		if self.limit is not None:
			matched = matched[: self.limit]
		return matched


SnapshotCallback = Callable[[List[Document]], Union[Awaitable[None], None]]


class Subscription:
	"""Handle for a live watch; `unsubscribe()` stops all further deliveries."""

	def __init__(
		self,
		query: Query,
		callback: SnapshotCallback,
		*,
		on_close: Optional[Callable[["Subscription"], None]] = None,
	) -> None:
		self.query = query
		self._callback = callback
		self._on_close = on_close
		self._active = True
		self.deliveries = 0

	@property
	def active(self) -> bool:
		return self._active

	async def deliver(self, documents: List[Document]) -> None:
		if not self._active:
			return
		result = self._callback(documents)
		if inspect.isawaitable(result):
			await result
		self.deliveries += 1

	def unsubscribe(self) -> None:
		if not self._active:
			return
		self._active = False
		if self._on_close is not None:
			self._on_close(self)


class DocumentStore(Protocol):
	async def get(self, path: str) -> Optional[Document]:
		...

	async def create(self, path: str, data: Mapping[str, Any], *, if_absent: bool = True) -> bool:
		...

	async def add(self, collection: str, data: Mapping[str, Any]) -> Document:
		...

	async def update(self, path: str, changes: Mapping[str, Any]) -> Document:
		...

	async def delete(self, path: str) -> None:
		...

	async def query(self, query: Query) -> List[Document]:
		...

	async def watch(self, query: Query, callback: SnapshotCallback) -> Subscription:
		...

	async def close(self) -> None:
		...
