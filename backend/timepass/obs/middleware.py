"""ASGI middleware: request ids, request metrics and one access log line per request."""

from __future__ import annotations

import time
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from timepass.api.request_id import REQUEST_ID_ATTR, REQUEST_ID_HEADER
from timepass.obs import logging as obs_logging
from timepass.obs import metrics
from timepass.settings import settings


def _route_template(request: Request) -> str:
	route = request.scope.get("route")
	if route and getattr(route, "path", None):
		return route.path  # type: ignore[return-value]
	return request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
	"""Every response carries X-Request-Id; metrics and logs only when enabled."""

	def __init__(self, app) -> None:
		super().__init__(app)
		self._logger = obs_logging.get_logger("http")

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
		setattr(request.state, REQUEST_ID_ATTR, request_id)
		if not settings.obs_enabled:
			response = await call_next(request)
			response.headers.setdefault(REQUEST_ID_HEADER, request_id)
			return response

		tokens = obs_logging.bind_context(
			request_id=request_id,
			route=request.url.path,
			user_id=request.headers.get("X-User-Id"),
		)
		start = time.perf_counter()
		status_code = 500
		try:
			try:
				response = await call_next(request)
				status_code = response.status_code
			except Exception:
				self._logger.exception("http_request_error", extra={"method": request.method})
				raise
			finally:
				elapsed = time.perf_counter() - start
				route = _route_template(request)
				metrics.observe_request(route, request.method, status_code, elapsed)
			response.headers.setdefault(REQUEST_ID_HEADER, request_id)
			self._logger.info(
				"http_request",
				extra={
					"status": status_code,
					"method": request.method,
					"latency_ms": round(elapsed * 1000, 3),
					"route": route,
				},
			)
			return response
		finally:
			obs_logging.reset_context(tokens)


def install(app) -> None:
	app.add_middleware(ObservabilityMiddleware)
