"""Message and notification fan-out."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping

from learnhub.realtime.errors import ValidationError
from learnhub.realtime.models import ConnectionId, Delivery, Message, Notification, RoomId, chat_id_of, private_room
from learnhub.realtime.registry import ConnectionRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 4000


def _utc_timestamp() -> str:
	return datetime.now(timezone.utc).isoformat()


def _message_id() -> str:
	return uuid.uuid4().hex


class Dispatcher:
	"""Stamps outbound messages/notifications and resolves who receives them.

	The sender of a chat message receives their own ``new-message`` (so their
	other tabs stay in sync) but not the derived ``notification``.
	"""

	def __init__(
		self,
		registry: ConnectionRegistry,
		*,
		max_length: int = DEFAULT_MAX_LENGTH,
		clock: Callable[[], str] = _utc_timestamp,
		id_factory: Callable[[], str] = _message_id,
	) -> None:
		self._registry = registry
		self._max_length = max_length
		self._clock = clock
		self._id_factory = id_factory

	def send_message(self, sender_connection_id: ConnectionId, room_id: RoomId, content: Any) -> List[Delivery]:
		if not isinstance(content, str) or not content.strip():
			raise ValidationError("empty_message", message="message content is empty")
		if self._max_length > 0 and len(content) > self._max_length:
			raise ValidationError("message_too_long", message=f"message exceeds {self._max_length} characters")
		sender = self._registry.require(sender_connection_id)
		message = Message(
			id=self._id_factory(),
			room_id=room_id,
			sender_id=sender.user_id,
			sender_name=sender.display_name,
			content=content,
			timestamp=self._clock(),
		)
		rooms = self._registry.rooms
		deliveries: List[Delivery] = []
		delivery = rooms.broadcast(room_id, "new-message", message.to_payload())
		if delivery:
			deliveries.append(delivery)
		notice: dict[str, Any] = {
			"type": "new_message",
			"message": f"New message from {sender.display_name}",
			"roomId": room_id,
		}
		chat_id = chat_id_of(room_id)
		if chat_id is not None:
			notice["chatId"] = chat_id
		delivery = rooms.broadcast(room_id, "notification", notice, exclude=sender_connection_id)
		if delivery:
			deliveries.append(delivery)
		logger.debug(
			"message relayed room=%s sender=%s recipients=%d",
			room_id,
			sender.user_id,
			len(deliveries[0]) if deliveries else 0,
		)
		return deliveries

	def send_notification(self, payload: Mapping[str, Any]) -> List[Delivery]:
		"""Deliver to ``user:<userId>`` when a target is given, else to every live connection."""
		if not isinstance(payload, Mapping):
			raise ValidationError("invalid_payload", message="notification payload must be an object")
		notification = Notification.from_payload(dict(payload))
		data = notification.to_payload()
		if notification.target_user_id is not None:
			delivery = self._registry.rooms.broadcast(private_room(notification.target_user_id), "notification", data)
			return [delivery] if delivery else []
		targets = self._registry.connection_ids()
		if not targets:
			return []
		return [Delivery(event="notification", payload=data, targets=targets)]
