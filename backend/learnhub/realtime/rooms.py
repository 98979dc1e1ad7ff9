"""Room membership index and broadcast fan-out."""

from __future__ import annotations

from typing import Any, Dict, FrozenSet, Mapping, Optional

from learnhub.realtime.errors import ValidationError
from learnhub.realtime.models import Connection, ConnectionId, Delivery, RoomId


class RoomRouter:
	"""Reference-counted rooms: created on first join, dropped when the last member leaves.

	Reads of an absent room behave as reads of an empty one.
	"""

	def __init__(self, connections: Mapping[ConnectionId, Connection]) -> None:
		self._connections = connections
		self._members: Dict[RoomId, set[ConnectionId]] = {}

	def join(self, connection_id: ConnectionId, room_id: RoomId) -> bool:
		"""Add the connection to the room; returns False when it was already a member."""
		connection = self._connections.get(connection_id)
		if connection is None:
			raise ValidationError("not_connected")
		members = self._members.setdefault(room_id, set())
		if connection_id in members:
			return False
		members.add(connection_id)
		connection.joined_rooms.add(room_id)
		return True

	def leave(self, connection_id: ConnectionId, room_id: RoomId) -> bool:
		"""Remove the connection from the room; returns False when it was not a member."""
		connection = self._connections.get(connection_id)
		if connection is not None:
			connection.joined_rooms.discard(room_id)
		members = self._members.get(room_id)
		if not members or connection_id not in members:
			return False
		members.discard(connection_id)
		if not members:
			del self._members[room_id]
		return True

	def purge(self, connection_id: ConnectionId) -> int:
		"""Drop the connection from every member set, registered or not."""
		removed = 0
		for room_id in [room for room, members in self._members.items() if connection_id in members]:
			if self.leave(connection_id, room_id):
				removed += 1
		return removed

	def members(self, room_id: RoomId) -> FrozenSet[ConnectionId]:
		return frozenset(self._members.get(room_id, ()))

	def is_member(self, connection_id: ConnectionId, room_id: RoomId) -> bool:
		return connection_id in self._members.get(room_id, ())

	def rooms(self) -> FrozenSet[RoomId]:
		return frozenset(self._members)

	def __len__(self) -> int:
		return len(self._members)

	def broadcast(
		self,
		room_id: RoomId,
		event: str,
		payload: Any,
		*,
		exclude: Optional[ConnectionId] = None,
	) -> Optional[Delivery]:
		"""Snapshot the room's recipients; None when nobody would receive the event."""
		targets = tuple(sorted(cid for cid in self._members.get(room_id, ()) if cid != exclude))
		if not targets:
			return None
		return Delivery(event=event, payload=payload, targets=targets)
