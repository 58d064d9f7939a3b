"""Settings for the timepass messaging backend."""

from __future__ import annotations

import json
from typing import Any, Tuple

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
	if env_names:
		alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
		return Field(default=default, validation_alias=alias)
	return Field(default=default)


class Settings(BaseSettings):
	redis_url: str = _env_field("redis://localhost:6379/0", "REDIS_URL")
	secret_key: str = _env_field("dev-secret-change-me", "SECRET_KEY")

	# Document store collaborator
	store_backend: str = _env_field("memory", "STORE_BACKEND")
	store_key_prefix: str = _env_field("tp:", "STORE_KEY_PREFIX")
	store_transaction_retries: int = _env_field(8, "STORE_TRANSACTION_RETRIES")

	# Messaging knobs
	chat_dwell_seconds: float = _env_field(1.0, "CHAT_DWELL_SECONDS")
	chat_preview_max_chars: int = _env_field(50, "CHAT_PREVIEW_MAX_CHARS")
	chat_unread_strategy: str = _env_field("precise", "CHAT_UNREAD_STRATEGY")
	chat_max_text_length: int = _env_field(4000, "CHAT_MAX_TEXT_LENGTH")

	environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
	obs_enabled: bool = _env_field(True, "OBS_ENABLED")
	obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
	obs_log_sampling_rate_info: float = _env_field(0.1, "LOG_SAMPLING_RATE_INFO")
	service_name: str = _env_field("timepass-messaging", "SERVICE_NAME")
	git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")

	# Comma-separated or JSON list; see allowed_origins()
	cors_allow_origins: str = _env_field("", "CORS_ALLOW_ORIGINS")

	model_config = SettingsConfigDict(
		env_prefix="",
		env_file=".env",
		case_sensitive=False,
		extra="ignore",
	)

	# Environment helpers
	def is_prod(self) -> bool:
		return self.environment.lower() in ("prod", "production", "live")

	def is_dev(self) -> bool:
		return self.environment.lower() in ("dev", "development")

	def allowed_origins(self) -> Tuple[str, ...]:
		"""Normalise CORS_ALLOW_ORIGINS.

		Supports:
		- empty / missing -> ()
		- JSON string (e.g. '["https://a","https://b"]') -> tuple of origins
		- comma-separated string -> tuple of origins
		"""
		text = (self.cors_allow_origins or "").strip()
		if not text:
			return ()
		if text.startswith("["):
			try:
				data = json.loads(text)
			except ValueError:
				data = None
			if isinstance(data, list):
				return tuple(str(item).strip() for item in data if str(item).strip())
		return tuple(part.strip() for part in text.split(",") if part.strip())

	@field_validator("chat_unread_strategy", "store_backend", mode="before")
	@classmethod
	def _lower(cls, value: Any) -> Any:
		if isinstance(value, str):
			return value.strip().lower()
		return value


settings = Settings()
