"""Ephemeral "who is typing where" state.

Typing is tracked per user, not per connection: two tabs of the same user
typing in one room collapse to a single entry. An entry survives as long as
at least one of the user's live connections is still joined to the room.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, FrozenSet, List, Optional

from learnhub.realtime.models import ConnectionId, Delivery, RoomId, chat_id_of
from learnhub.realtime.registry import ConnectionRegistry


def _typing_payload(room_id: RoomId, **fields: str) -> Dict[str, str]:
	payload = dict(fields, roomId=room_id)
	chat_id = chat_id_of(room_id)
	if chat_id is not None:
		payload["chatId"] = chat_id
	return payload


class TypingTracker:
	def __init__(
		self,
		registry: ConnectionRegistry,
		*,
		idle_timeout: float = 0.0,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self._registry = registry
		self._idle_timeout = max(0.0, float(idle_timeout))
		self._clock = clock
		# room -> user -> last typing-start
		self._typing: Dict[RoomId, Dict[str, float]] = {}

	def start(self, connection_id: ConnectionId, room_id: RoomId) -> List[Delivery]:
		connection = self._registry.require(connection_id)
		users = self._typing.setdefault(room_id, {})
		already = connection.user_id in users
		users[connection.user_id] = self._clock()
		if already:
			return []
		delivery = self._registry.rooms.broadcast(
			room_id,
			"user-typing",
			_typing_payload(room_id, userId=connection.user_id, userName=connection.display_name),
			exclude=connection_id,
		)
		return [delivery] if delivery else []

	def stop(self, connection_id: ConnectionId, room_id: RoomId) -> List[Delivery]:
		connection = self._registry.require(connection_id)
		return self._clear(connection.user_id, room_id, exclude=connection_id)

	def on_leave(self, connection_id: ConnectionId, room_id: RoomId) -> List[Delivery]:
		"""Clear the user's entry once none of their connections remain in the room."""
		connection = self._registry.get(connection_id)
		if connection is None:
			return []
		if self._present_elsewhere(connection.user_id, room_id, connection_id):
			return []
		return self._clear(connection.user_id, room_id, exclude=connection_id)

	def on_disconnect(self, connection_id: ConnectionId) -> List[Delivery]:
		"""Run before the registry releases the connection."""
		connection = self._registry.get(connection_id)
		if connection is None:
			return []
		user_id = connection.user_id
		candidates = set(connection.joined_rooms)
		candidates.update(room for room, users in self._typing.items() if user_id in users)
		deliveries: List[Delivery] = []
		for room_id in sorted(candidates):
			if self._present_elsewhere(user_id, room_id, connection_id):
				continue
			deliveries.extend(self._clear(user_id, room_id, exclude=connection_id))
		return deliveries

	def expire(self, now: Optional[float] = None) -> List[Delivery]:
		"""Clear entries idle for longer than the configured timeout (disabled at 0)."""
		if self._idle_timeout <= 0:
			return []
		now = self._clock() if now is None else now
		stale = [
			(room_id, user_id)
			for room_id, users in self._typing.items()
			for user_id, started in users.items()
			if now - started >= self._idle_timeout
		]
		deliveries: List[Delivery] = []
		for room_id, user_id in stale:
			deliveries.extend(self._clear(user_id, room_id))
		return deliveries

	def is_typing(self, user_id: str, room_id: RoomId) -> bool:
		return user_id in self._typing.get(room_id, ())

	def typing_users(self, room_id: RoomId) -> FrozenSet[str]:
		return frozenset(self._typing.get(room_id, ()))

	def entries(self) -> int:
		return sum(len(users) for users in self._typing.values())

	def _present_elsewhere(self, user_id: str, room_id: RoomId, connection_id: ConnectionId) -> bool:
		rooms = self._registry.rooms
		return any(
			other != connection_id and rooms.is_member(other, room_id)
			for other in self._registry.connections_for_user(user_id)
		)

	def _clear(self, user_id: str, room_id: RoomId, *, exclude: Optional[ConnectionId] = None) -> List[Delivery]:
		users = self._typing.get(room_id)
		if not users or user_id not in users:
			return []
		del users[user_id]
		if not users:
			del self._typing[room_id]
		delivery = self._registry.rooms.broadcast(
			room_id,
			"user-stop-typing",
			_typing_payload(room_id, userId=user_id),
			exclude=exclude,
		)
		return [delivery] if delivery else []
