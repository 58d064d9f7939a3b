"""Normalisation of the timestamp shapes found in stored documents.

Every read boundary funnels raw values through `to_instant` so the rest of
the domain only ever handles timezone-aware UTC datetimes.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

# Epoch numbers above this are taken to be milliseconds.
_MILLIS_THRESHOLD = 10_000_000_000


def _aware(value: datetime) -> datetime:
	if value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)
	return value.astimezone(timezone.utc)


def _from_epoch(value: float) -> datetime:
	if isinstance(value, float) and not math.isfinite(value):
		raise ValueError(f"non-finite epoch value: {value!r}")
	seconds = value / 1000.0 if abs(value) >= _MILLIS_THRESHOLD else float(value)
	return datetime.fromtimestamp(seconds, tz=timezone.utc)


def to_instant(raw: Any) -> Optional[datetime]:
	if raw is None:
		return None
	if isinstance(raw, datetime):
		return _aware(raw)
	if isinstance(raw, bool):
		raise ValueError("booleans are not timestamps")
	if isinstance(raw, (int, float)):
		return _from_epoch(raw)
	if isinstance(raw, str):
		text = raw.strip()
		if not text:
			raise ValueError("empty timestamp string")
		if text.endswith(("Z", "z")):
			text = text[:-1] + "+00:00"
		return _aware(datetime.fromisoformat(text))
	to_datetime = getattr(raw, "to_datetime", None)
	if callable(to_datetime):
		return to_instant(to_datetime())
	if isinstance(raw, Mapping) and "seconds" in raw:
		seconds = float(raw["seconds"]) + float(raw.get("nanoseconds") or 0) / 1e9
		return datetime.fromtimestamp(seconds, tz=timezone.utc)
	raise ValueError(f"unsupported timestamp value: {type(raw).__name__}")


def format_relative(at: Optional[datetime], now: Optional[datetime] = None) -> str:
	"""Short human distance between `at` and `now` ("5 minutes ago")."""
	if at is None:
		return ""
	now = _aware(now) if now is not None else datetime.now(timezone.utc)
	delta = now - _aware(at)
	if delta < timedelta(minutes=1):
		return "just now"
	for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60)):
		count = int(delta.total_seconds() // size)
		if count >= 1:
			if unit == "day" and count >= 7:
				return _aware(at).strftime("%b %d")
			return f"{count} {unit}{'s' if count != 1 else ''} ago"
	return "just now"
