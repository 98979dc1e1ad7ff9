"""FastAPI + Socket.IO application entrypoint.

Run with ``uvicorn learnhub.main:socket_app``.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from learnhub.api import notifications, ops
from learnhub.api.errors import install_error_handlers
from learnhub.infra import postgres
from learnhub.obs import init as obs_init
from learnhub.realtime.gateway import Gateway
from learnhub.realtime.identity import IdentityVerifier, PostgresUserDirectory, UserDirectory
from learnhub.realtime.policy import RoomAccessPolicy
from learnhub.realtime.sockets import GatewayNamespace
from learnhub.settings import settings

logger = logging.getLogger(__name__)


def _allowed_origins() -> list[str]:
	allow_origins = list(settings.cors_allow_origins)
	if not allow_origins:
		allow_origins = ["http://localhost:3000"] if settings.is_dev() else []
	return allow_origins


def build_app(
	*,
	directory: Optional[UserDirectory] = None,
	access_policy: Optional[RoomAccessPolicy] = None,
) -> FastAPI:
	"""Compose the HTTP app, the Socket.IO server and one gateway instance."""
	uses_postgres = directory is None
	gateway = Gateway.from_settings(settings, access_policy=access_policy)
	verifier = IdentityVerifier(directory or PostgresUserDirectory())
	namespace = GatewayNamespace(gateway, verifier)

	@asynccontextmanager
	async def lifespan(app: FastAPI):
		if uses_postgres:
			await postgres.init_pool()
		tasks: list[asyncio.Task] = []
		if settings.typing_idle_timeout_seconds > 0:
			tasks.append(asyncio.create_task(namespace.run_typing_sweeper(), name="typing-sweeper"))
		logger.info("realtime gateway started")
		try:
			yield
		finally:
			for task in tasks:
				task.cancel()
			await asyncio.gather(*tasks, return_exceptions=True)
			if uses_postgres:
				await postgres.close_pool()

	app = FastAPI(title="LearnHub Realtime Gateway", lifespan=lifespan)
	install_error_handlers(app)
	allow_origins = _allowed_origins()
	app.add_middleware(
		CORSMiddleware,
		allow_origins=allow_origins,
		allow_credentials=True,
		allow_methods=["GET", "POST"],
		allow_headers=["*"],
	)
	obs_init(app)

	# async_handlers=False keeps each client's events in arrival order
	sio = socketio.AsyncServer(
		async_mode="asgi",
		cors_allowed_origins=allow_origins,
		async_handlers=False,
	)
	sio.register_namespace(namespace)
	app.state.sio = sio
	app.state.gateway = gateway
	app.state.realtime = namespace

	app.include_router(ops.router)
	app.include_router(notifications.router)
	return app


app = build_app()
socket_app = socketio.ASGIApp(app.state.sio, other_asgi_app=app)
