"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from timepass.api import chat, notifications, ops
from timepass.api.errors import install_error_handlers
from timepass.domain.chat.sockets import ChatNamespace
from timepass.infra.redis import close_redis
from timepass.infra.store import close_store, get_store
from timepass.obs import init as obs_init
from timepass.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	store = get_store()
	logger.info("startup", extra={"store": type(store).__name__, "env": settings.environment})
	try:
		yield
	finally:
		await close_store()
		if settings.store_backend == "redis":
			await close_redis()


app = FastAPI(title="Timepass Messaging", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(settings.allowed_origins())
if not allow_origins:
	allow_origins = ["http://localhost:5173"] if settings.is_dev() else []

# Starlette disallows wildcard '*' with allow_credentials=True. Replace '*' with explicit origins.
if "*" in allow_origins:
	allow_origins = ["http://localhost:5173", "http://127.0.0.1:5173"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

# Use the same allowed origins for Socket.IO as for the REST API
sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
chat_namespace = ChatNamespace()
sio.register_namespace(chat_namespace)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
# Also assigns X-Request-Id to every response
obs_init(app)

app.include_router(chat.router)
app.include_router(notifications.router)
app.include_router(ops.router, tags=["ops"])
