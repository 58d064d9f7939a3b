"""Operational endpoints: health probes and the Prometheus scrape target."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from timepass.infra.redis import redis_client
from timepass.settings import settings

LOGGER = logging.getLogger(__name__)

router = APIRouter()


async def _store_status(timeout: float = 0.2) -> Dict[str, Any]:
	if settings.store_backend != "redis":
		return {"ok": True, "backend": settings.store_backend}
	start = perf_counter()
	try:
		await asyncio.wait_for(redis_client.ping(), timeout=timeout)
	except Exception as exc:  # pragma: no cover - depends on runtime
		LOGGER.warning("store_readiness_failed", exc_info=True)
		return {"ok": False, "backend": "redis", "error": str(exc)}
	return {"ok": True, "backend": "redis", "latency_ms": round((perf_counter() - start) * 1000, 2)}


@router.get("/health/live")
async def health_live() -> dict[str, str]:
	return {"status": "ok", "service": settings.service_name}


@router.get("/health/ready")
async def health_ready() -> Response:
	store = await _store_status()
	status_code = 200 if store["ok"] else 503
	return JSONResponse(content={"status": "ok" if store["ok"] else "degraded", "store": store}, status_code=status_code)


@router.get("/metrics")
async def prometheus_metrics() -> Response:
	payload = generate_latest()
	return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
