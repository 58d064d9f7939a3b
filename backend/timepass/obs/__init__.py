"""Observability bootstrap: JSON logging plus the request middleware."""

from __future__ import annotations

from fastapi import FastAPI

from timepass.settings import settings

_logging_configured = False


def init(app: FastAPI) -> None:
	"""Install request instrumentation on `app` and configure logging once per process."""
	global _logging_configured
	from timepass.obs import logging as obs_logging
	from timepass.obs import middleware

	middleware.install(app)
	if settings.obs_enabled and not _logging_configured:
		obs_logging.configure_logging().info(
			"logging_configured",
			extra={"level": settings.obs_log_level, "sampling": settings.obs_log_sampling_rate_info},
		)
		_logging_configured = True


__all__ = ["init"]
