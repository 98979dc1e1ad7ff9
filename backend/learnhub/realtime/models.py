"""Domain models for the realtime gateway.

Nothing here is persisted: connections live for one transport session and
messages exist only while they are being fanned out.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

RoomId = str
ConnectionId = str

PRIVATE_ROOM_PREFIX = "user:"
CHAT_ROOM_PREFIX = "chat:"


def private_room(user_id: str) -> RoomId:
	return f"{PRIVATE_ROOM_PREFIX}{user_id}"


def chat_room(chat_id: str) -> RoomId:
	return f"{CHAT_ROOM_PREFIX}{chat_id}"


def is_private_room(room_id: RoomId) -> bool:
	return room_id.startswith(PRIVATE_ROOM_PREFIX)


def chat_id_of(room_id: RoomId) -> Optional[str]:
	if room_id.startswith(CHAT_ROOM_PREFIX):
		return room_id[len(CHAT_ROOM_PREFIX):]
	return None


@dataclass(slots=True, frozen=True)
class Identity:
	"""Authenticated user behind a connection."""

	id: str
	display_name: str


@dataclass(slots=True)
class Connection:
	"""One live transport session.

	``joined_rooms`` mirrors the router's membership index and is only
	mutated by :class:`~learnhub.realtime.rooms.RoomRouter`.
	"""

	connection_id: ConnectionId
	identity: Identity
	joined_rooms: set[RoomId] = field(default_factory=set)
	connected_at: float = field(default_factory=time.time)

	@property
	def user_id(self) -> str:
		return self.identity.id

	@property
	def display_name(self) -> str:
		return self.identity.display_name


@dataclass(slots=True, frozen=True)
class Message:
	id: str
	room_id: RoomId
	sender_id: str
	sender_name: str
	content: str
	timestamp: str

	def to_payload(self) -> Dict[str, Any]:
		payload: Dict[str, Any] = {
			"id": self.id,
			"roomId": self.room_id,
			"senderId": self.sender_id,
			"senderName": self.sender_name,
			"content": self.content,
			"timestamp": self.timestamp,
		}
		chat_id = chat_id_of(self.room_id)
		if chat_id is not None:
			payload["chatId"] = chat_id
		return payload


@dataclass(slots=True, frozen=True)
class Notification:
	"""A notification addressed to one user, or to everyone when ``target_user_id`` is None."""

	fields: Dict[str, Any]
	target_user_id: Optional[str] = None

	@property
	def broadcast(self) -> bool:
		return self.target_user_id is None

	@classmethod
	def from_payload(cls, payload: Dict[str, Any]) -> "Notification":
		"""Keep the sender's fields as given; only ``userId`` is read, to pick the target."""
		target = payload.get("userId")
		return cls(
			fields=dict(payload),
			target_user_id=str(target) if target not in (None, "") else None,
		)

	def to_payload(self) -> Dict[str, Any]:
		return dict(self.fields)


@dataclass(slots=True, frozen=True)
class Delivery:
	"""An outbound event and the snapshot of connections that should receive it."""

	event: str
	payload: Any
	targets: Tuple[ConnectionId, ...]

	def __len__(self) -> int:
		return len(self.targets)
