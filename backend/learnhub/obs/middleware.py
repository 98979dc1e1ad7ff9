"""ASGI middleware for HTTP metrics and structured request logs."""

from __future__ import annotations

import time
from uuid import uuid4

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from learnhub.obs import logging as obs_logging
from learnhub.obs import metrics
from learnhub.settings import settings


def _route_template(scope: Scope) -> str:
	route = scope.get("route")
	path = getattr(route, "path", None)
	return path or scope.get("path", "")


class ObservabilityMiddleware:
	"""Tag each HTTP request with an id, time it and log one line when it completes.

	Socket.IO traffic never reaches this middleware; ``socketio.ASGIApp``
	handles it before FastAPI sees the scope.
	"""

	def __init__(self, app: ASGIApp, *, enabled: bool = True) -> None:
		self.app = app
		self._enabled = enabled
		self._logger = obs_logging.get_logger("learnhub.http")

	async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
		if scope["type"] != "http" or not self._enabled or not settings.obs_enabled:
			await self.app(scope, receive, send)
			return

		request_id = Headers(scope=scope).get("x-request-id") or str(uuid4())
		scope.setdefault("state", {})["request_id"] = request_id
		status_code = 500

		async def send_wrapper(message: Message) -> None:
			nonlocal status_code
			if message["type"] == "http.response.start":
				status_code = message["status"]
				headers = MutableHeaders(scope=message)
				if "x-request-id" not in headers:
					headers["X-Request-Id"] = request_id
			await send(message)

		context = obs_logging.bind_context(request_id=request_id, route=scope.get("path"))
		start = time.perf_counter()
		try:
			await self.app(scope, receive, send_wrapper)
		except Exception:
			self._logger.exception("http_request_error", extra={"method": scope.get("method")})
			raise
		finally:
			elapsed = time.perf_counter() - start
			route = _route_template(scope)
			metrics.observe_request(route, scope.get("method", ""), status_code, elapsed)
			self._logger.info(
				"http_request",
				extra={
					"status": status_code,
					"method": scope.get("method"),
					"latency_ms": round(elapsed * 1000, 3),
				},
			)
			obs_logging.reset_context(context)


def install(app, *, enabled: bool = True) -> None:
	app.add_middleware(ObservabilityMiddleware, enabled=enabled)
