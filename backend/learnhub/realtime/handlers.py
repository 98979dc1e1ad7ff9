"""Inbound event handlers.

Each handler is a synchronous function of ``(gateway, connection_id, payload)``
returning the deliveries it produced. Handlers never await: a handler's state
change is complete before any other event is looked at.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, List

from learnhub.realtime.errors import ValidationError
from learnhub.realtime.models import ConnectionId, Delivery, RoomId, chat_room, is_private_room

if TYPE_CHECKING:  # pragma: no cover - type hints only
	from learnhub.realtime.gateway import Gateway

Handler = Callable[["Gateway", ConnectionId, Any], List[Delivery]]

MAX_ROOM_ID_LENGTH = 200


def _checked(room_id: Any) -> RoomId:
	if not isinstance(room_id, str) or not room_id.strip():
		raise ValidationError("invalid_room", message="room id must be a non-empty string")
	if len(room_id) > MAX_ROOM_ID_LENGTH:
		raise ValidationError("invalid_room", message="room id is too long")
	return room_id


def room_from_payload(payload: Any) -> RoomId:
	"""Accept a bare room id, ``{"roomId": ...}`` or the client's ``{"chatId": ...}``."""
	if isinstance(payload, dict):
		if payload.get("roomId") is not None:
			return _checked(payload["roomId"])
		if payload.get("chatId") is not None:
			return chat_room(_checked(str(payload["chatId"])))
		raise ValidationError("invalid_room", message="roomId is required")
	return _checked(payload)


def chat_from_payload(payload: Any) -> RoomId:
	if isinstance(payload, dict):
		return room_from_payload(payload)
	if isinstance(payload, (int, str)) and not isinstance(payload, bool):
		return chat_room(_checked(str(payload)))
	raise ValidationError("invalid_room", message="chatId is required")


def _joinable(gateway: "Gateway", connection_id: ConnectionId, room_id: RoomId) -> RoomId:
	if is_private_room(room_id):
		raise ValidationError("reserved_room", message="private rooms are managed by the server")
	connection = gateway.registry.require(connection_id)
	if not gateway.access_policy.can_join(connection.identity, room_id):
		raise ValidationError("room_forbidden")
	return room_id


def _unreserved(room_id: RoomId) -> RoomId:
	if is_private_room(room_id):
		raise ValidationError("reserved_room", message="private rooms are managed by the server")
	return room_id


def join_room(gateway: "Gateway", connection_id: ConnectionId, payload: Any) -> List[Delivery]:
	room_id = _joinable(gateway, connection_id, room_from_payload(payload))
	gateway.rooms.join(connection_id, room_id)
	return []


def leave_room(gateway: "Gateway", connection_id: ConnectionId, payload: Any) -> List[Delivery]:
	room_id = _unreserved(room_from_payload(payload))
	gateway.rooms.leave(connection_id, room_id)
	return gateway.typing.on_leave(connection_id, room_id)


def join_chat(gateway: "Gateway", connection_id: ConnectionId, payload: Any) -> List[Delivery]:
	room_id = _joinable(gateway, connection_id, chat_from_payload(payload))
	gateway.rooms.join(connection_id, room_id)
	return []


def leave_chat(gateway: "Gateway", connection_id: ConnectionId, payload: Any) -> List[Delivery]:
	room_id = _unreserved(chat_from_payload(payload))
	gateway.rooms.leave(connection_id, room_id)
	return gateway.typing.on_leave(connection_id, room_id)


def send_message(gateway: "Gateway", connection_id: ConnectionId, payload: Any) -> List[Delivery]:
	if not isinstance(payload, dict):
		raise ValidationError("invalid_payload", message="expected {roomId, content}")
	room_id = room_from_payload(payload)
	return gateway.dispatcher.send_message(connection_id, _unreserved(room_id), payload.get("content"))


def typing_start(gateway: "Gateway", connection_id: ConnectionId, payload: Any) -> List[Delivery]:
	return gateway.typing.start(connection_id, _unreserved(room_from_payload(payload)))


def typing_stop(gateway: "Gateway", connection_id: ConnectionId, payload: Any) -> List[Delivery]:
	return gateway.typing.stop(connection_id, _unreserved(room_from_payload(payload)))


def send_notification(gateway: "Gateway", connection_id: ConnectionId, payload: Any) -> List[Delivery]:
	# No authorization check: any connected client may notify any user or everyone
	return gateway.dispatcher.send_notification(payload)


HANDLERS: Dict[str, Handler] = {
	"join-room": join_room,
	"leave-room": leave_room,
	"join-chat": join_chat,
	"leave-chat": leave_chat,
	"send-message": send_message,
	"typing-start": typing_start,
	"typing-stop": typing_stop,
	"send-notification": send_notification,
}
