"""Socket.IO namespace bridging the transport onto the gateway."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Optional

import socketio

from learnhub.obs import logging as obs_logging
from learnhub.obs import metrics as obs_metrics
from learnhub.realtime import policy
from learnhub.realtime.errors import AuthenticationError, GatewayError
from learnhub.realtime.gateway import Gateway
from learnhub.realtime.handlers import HANDLERS
from learnhub.realtime.identity import IdentityVerifier
from learnhub.realtime.models import Delivery
from learnhub.settings import settings

logger = logging.getLogger(__name__)


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def bearer_token(environ: dict, auth: Optional[dict]) -> Optional[str]:
	"""Read the credential from the connect packet's auth data, else the Authorization header."""
	scope = environ.get("asgi.scope", environ)
	auth_payload = auth or environ.get("auth") or scope.get("auth") or {}
	token = auth_payload.get("token") if isinstance(auth_payload, dict) else None
	if token:
		return str(token)
	auth_header = _header(scope, "authorization")
	if auth_header and auth_header.lower().startswith("bearer "):
		return auth_header.split(" ", 1)[1].strip() or None
	return None


class GatewayNamespace(socketio.AsyncNamespace):
	"""Authenticates handshakes and routes client events through the gateway's dispatch table."""

	def __init__(self, gateway: Gateway, verifier: IdentityVerifier, namespace: str = "/") -> None:
		super().__init__(namespace)
		self.gateway = gateway
		self._verifier = verifier
		self._pending: set[str] = set()
		self._aborted: set[str] = set()

	async def trigger_event(self, event: str, *args: Any) -> Any:
		if event in ("connect", "disconnect"):
			return await super().trigger_event(event, *args)
		if event not in HANDLERS:
			logger.debug("ignoring unknown socket event=%s", event)
			return None
		sid = args[0]
		payload = args[1] if len(args) > 1 else None
		await self._handle(event, sid, payload)
		return None

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		obs_metrics.socket_connected(self.namespace)
		self._pending.add(sid)
		try:
			identity = await asyncio.wait_for(
				self._verifier.verify(bearer_token(environ, auth)),
				timeout=settings.handshake_timeout_seconds,
			)
		except AuthenticationError as exc:
			self._refuse(sid, exc.code)
			raise ConnectionRefusedError("unauthorized") from None
		except asyncio.TimeoutError:
			self._refuse(sid, "timeout")
			raise ConnectionRefusedError("handshake_timeout") from None
		except Exception:
			logger.exception("handshake verification failed sid=%s", sid)
			self._refuse(sid, "error")
			raise ConnectionRefusedError("unavailable") from None
		self._pending.discard(sid)
		if sid in self._aborted:
			# Transport went away while the user lookup was in flight
			self._aborted.discard(sid)
			obs_metrics.socket_disconnected(self.namespace)
			raise ConnectionRefusedError("disconnected")
		deliveries = self.gateway.connect(sid, identity)
		logger.info("gateway connect sid=%s user=%s", sid, identity.id)
		await self.emit("ready", {"userId": identity.id, "displayName": identity.display_name}, room=sid)
		await self.deliver(deliveries)
		self._record_state()

	async def on_disconnect(self, sid: str, reason: Optional[str] = None) -> None:
		if sid in self._pending:
			self._aborted.add(sid)
			return
		if sid not in self.gateway.registry:
			return
		obs_metrics.socket_disconnected(self.namespace)
		deliveries = self.gateway.disconnect(sid)
		logger.info("gateway disconnect sid=%s reason=%s", sid, reason)
		await self.deliver(deliveries)
		self._record_state()

	async def notify(self, payload: dict) -> int:
		"""Deliver a notification on behalf of HTTP handlers; returns the recipient count."""
		deliveries = self.gateway.notify(payload)
		await self.deliver(deliveries)
		return sum(len(delivery) for delivery in deliveries)

	async def deliver(self, deliveries: Iterable[Delivery]) -> None:
		for delivery in deliveries:
			for target in delivery.targets:
				try:
					await self.emit(delivery.event, delivery.payload, room=target)
				except Exception:
					logger.warning("socket emit failed event=%s sid=%s", delivery.event, target, exc_info=True)
			obs_metrics.socket_delivered(self.namespace, delivery.event, len(delivery))

	async def run_typing_sweeper(self, interval: Optional[float] = None) -> None:
		"""Periodically clear typing entries older than the idle timeout."""
		period = max(0.5, float(interval or settings.typing_sweep_interval_seconds))
		while True:
			await asyncio.sleep(period)
			deliveries = self.gateway.expire_typing()
			if deliveries:
				obs_metrics.typing_expired(len(deliveries))
				await self.deliver(deliveries)
				self._record_state()

	async def _handle(self, event: str, sid: str, payload: Any) -> None:
		obs_metrics.socket_event(self.namespace, event)
		connection = self.gateway.registry.get(sid)
		if connection is None:
			obs_metrics.socket_event_rejected(event, "not_connected")
			return
		context = obs_logging.bind_context(sid=sid, user_id=connection.user_id, event=event)
		try:
			await policy.enforce_event_limit(event, connection.user_id)
			deliveries = self.gateway.handle(event, sid, payload)
		except GatewayError as exc:
			obs_metrics.socket_event_rejected(event, exc.code)
			logger.info("socket event rejected event=%s code=%s", event, exc.code)
			if settings.emit_validation_errors:
				await self.emit("error", {"code": exc.code, "message": exc.detail, "event": event}, room=sid)
			return
		except Exception:
			obs_metrics.socket_handler_error(event)
			logger.exception("socket handler failed event=%s", event)
			return
		finally:
			obs_logging.reset_context(context)
		await self.deliver(deliveries)
		self._record_state()

	def _refuse(self, sid: str, reason: str) -> None:
		self._pending.discard(sid)
		self._aborted.discard(sid)
		obs_metrics.socket_auth_failed(reason)
		obs_metrics.socket_disconnected(self.namespace)
		logger.info("gateway handshake refused sid=%s reason=%s", sid, reason)

	def _record_state(self) -> None:
		stats = self.gateway.stats()
		obs_metrics.gateway_state(
			rooms=stats["rooms"],
			online_users=stats["online_users"],
			typing_entries=stats["typing_entries"],
		)
