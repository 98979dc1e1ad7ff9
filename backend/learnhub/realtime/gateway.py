"""Realtime gateway state container and event dispatch."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from learnhub.realtime.dispatcher import DEFAULT_MAX_LENGTH, Dispatcher
from learnhub.realtime.errors import ValidationError
from learnhub.realtime.handlers import HANDLERS
from learnhub.realtime.models import ConnectionId, Delivery, Identity
from learnhub.realtime.policy import RoomAccessPolicy
from learnhub.realtime.registry import ConnectionRegistry
from learnhub.realtime.typing_state import TypingTracker
from learnhub.settings import Settings


class Gateway:
	"""One isolated set of connections, rooms and typing state.

	The process entry point builds a single instance and hands it to the
	socket namespace and the HTTP layer; tests build as many as they like.
	"""

	def __init__(
		self,
		*,
		typing_idle_timeout: float = 0.0,
		message_max_length: int = DEFAULT_MAX_LENGTH,
		access_policy: Optional[RoomAccessPolicy] = None,
	) -> None:
		self.registry = ConnectionRegistry()
		self.rooms = self.registry.rooms
		self.typing = TypingTracker(self.registry, idle_timeout=typing_idle_timeout)
		self.dispatcher = Dispatcher(self.registry, max_length=message_max_length)
		self.access_policy = access_policy or RoomAccessPolicy()

	@classmethod
	def from_settings(cls, settings: Settings, *, access_policy: Optional[RoomAccessPolicy] = None) -> "Gateway":
		return cls(
			typing_idle_timeout=settings.typing_idle_timeout_seconds,
			message_max_length=settings.message_max_length,
			access_policy=access_policy,
		)

	def connect(self, connection_id: ConnectionId, identity: Identity) -> List[Delivery]:
		return self.registry.admit(connection_id, identity)

	def disconnect(self, connection_id: ConnectionId) -> List[Delivery]:
		# Typing cleanup must see the connection's rooms before they are released
		deliveries = self.typing.on_disconnect(connection_id)
		deliveries.extend(self.registry.release(connection_id))
		return deliveries

	def handle(self, event: str, connection_id: ConnectionId, payload: Any) -> List[Delivery]:
		handler = HANDLERS.get(event)
		if handler is None:
			raise ValidationError("unknown_event", message=f"unsupported event {event}")
		self.registry.require(connection_id)
		return handler(self, connection_id, payload)

	def notify(self, payload: Dict[str, Any]) -> List[Delivery]:
		"""Entry point for HTTP business logic (enrollment, course publish, ...)."""
		return self.dispatcher.send_notification(payload)

	def expire_typing(self, now: Optional[float] = None) -> List[Delivery]:
		return self.typing.expire(now)

	def stats(self) -> Dict[str, int]:
		return {
			"connections": len(self.registry),
			"online_users": len(self.registry.online_users()),
			"rooms": len(self.rooms),
			"typing_entries": self.typing.entries(),
		}
