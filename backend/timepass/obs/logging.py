"""JSON logging with request and socket-session context.

HTTP requests bind ``request_id``/``route``/``user_id``; socket handlers bind
``sid``/``user_id``/``conversation_id`` through `log_context`. Every bound
field is copied onto each record emitted while it is bound.
"""

from __future__ import annotations

import json
import logging
import random
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from timepass.settings import settings

_LOGGER_NAME = "timepass"

_CONTEXT: Dict[str, ContextVar[Optional[str]]] = {
	name: ContextVar(f"obs_{name}", default=None)
	for name in ("request_id", "route", "user_id", "sid", "conversation_id")
}

# Message bodies, previews and drafts never reach the log stream.
_REDACTED_KEYS = ("token", "secret", "authorization", "password", "text", "preview", "draft", "body")

_MAX_STRING = 200
_MAX_ITEMS = 10

_STANDARD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {"message", "asctime"}

# Chatty third-party loggers; their info lines drown out request logs.
_QUIET_LOGGERS = ("engineio.server", "socketio.server", "uvicorn.access")


def bind_context(**fields: Optional[str]) -> Dict[str, Token]:
	"""Bind the given context fields; unknown names and None values are ignored."""
	tokens: Dict[str, Token] = {}
	for name, value in fields.items():
		variable = _CONTEXT.get(name)
		if variable is not None and value is not None:
			tokens[name] = variable.set(str(value))
	return tokens


def reset_context(tokens: Dict[str, Token]) -> None:
	for name, token in tokens.items():
		_CONTEXT[name].reset(token)


@contextmanager
def log_context(**fields: Optional[str]) -> Iterator[None]:
	tokens = bind_context(**fields)
	try:
		yield
	finally:
		reset_context(tokens)


def current_request_id() -> Optional[str]:
	return _CONTEXT["request_id"].get()


def _clean(key: str, value: Any) -> Any:
	if any(marker in key.lower() for marker in _REDACTED_KEYS):
		return "[redacted]"
	if isinstance(value, str) and len(value) > _MAX_STRING:
		return value[:_MAX_STRING] + "…"
	if isinstance(value, datetime):
		return value.isoformat()
	if isinstance(value, dict):
		return {k: _clean(str(k), v) for k, v in list(value.items())[:_MAX_ITEMS]}
	if isinstance(value, (list, tuple, set)):
		items = list(value)
		cleaned = [_clean(key, item) for item in items[:_MAX_ITEMS]]
		if len(items) > _MAX_ITEMS:
			cleaned.append(f"+{len(items) - _MAX_ITEMS}")
		return cleaned
	return value


class JSONLogFormatter(logging.Formatter):
	"""One JSON object per record: service fields, bound context, then extras."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (match logging api)
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"logger": record.name,
			"msg": record.getMessage(),
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		for name, variable in _CONTEXT.items():
			value = variable.get()
			if value:
				payload[name] = value
		for key, value in record.__dict__.items():
			if key not in _STANDARD_ATTRS and key not in payload:
				payload[key] = _clean(key, value)
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Keep a fraction of info records; everything else passes."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		rate = settings.obs_log_sampling_rate_info
		return rate >= 1.0 or random.random() < max(rate, 0.0)


def configure_logging() -> logging.Logger:
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root = logging.getLogger()
	root.handlers[:] = [handler]
	root.setLevel(settings.obs_log_level.upper())
	for name in _QUIET_LOGGERS:
		logging.getLogger(name).setLevel(logging.WARNING)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME)
