"""Live connection registry with per-user presence tracking."""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, List, Optional, Tuple

from learnhub.realtime.errors import ValidationError
from learnhub.realtime.models import Connection, ConnectionId, Delivery, Identity, private_room
from learnhub.realtime.rooms import RoomRouter

logger = logging.getLogger(__name__)


class ConnectionRegistry:
	"""Owns every live :class:`Connection` and the room router built over them.

	A user may hold several connections at once (tabs, devices). ``user-online``
	is produced only when a user's connection count goes from 0 to 1 and
	``user-offline`` only when it drops back to 0.
	"""

	def __init__(self) -> None:
		self._connections: Dict[ConnectionId, Connection] = {}
		self._by_user: Dict[str, set[ConnectionId]] = {}
		self.rooms = RoomRouter(self._connections)

	def admit(self, connection_id: ConnectionId, identity: Identity) -> List[Delivery]:
		if connection_id in self._connections:
			raise ValidationError("already_admitted")
		connection = Connection(connection_id=connection_id, identity=identity)
		peers = self._by_user.setdefault(identity.id, set())
		first = not peers
		self._connections[connection_id] = connection
		peers.add(connection_id)
		self.rooms.join(connection_id, private_room(identity.id))
		logger.debug("connection admitted sid=%s user=%s peers=%d", connection_id, identity.id, len(peers))
		if not first:
			return []
		return self._presence("user-online", identity.id)

	def release(self, connection_id: ConnectionId) -> List[Delivery]:
		connection = self._connections.get(connection_id)
		if connection is None:
			# Disconnect can arrive before admission completed
			self.rooms.purge(connection_id)
			return []
		for room_id in list(connection.joined_rooms):
			self.rooms.leave(connection_id, room_id)
		del self._connections[connection_id]
		user_id = connection.user_id
		peers = self._by_user.get(user_id)
		if peers is not None:
			peers.discard(connection_id)
			if peers:
				return []
			del self._by_user[user_id]
		logger.debug("connection released sid=%s user=%s", connection_id, user_id)
		return self._presence("user-offline", user_id)

	def get(self, connection_id: ConnectionId) -> Optional[Connection]:
		return self._connections.get(connection_id)

	def require(self, connection_id: ConnectionId) -> Connection:
		connection = self._connections.get(connection_id)
		if connection is None:
			raise ValidationError("not_connected")
		return connection

	def connections_for_user(self, user_id: str) -> FrozenSet[ConnectionId]:
		return frozenset(self._by_user.get(user_id, ()))

	def is_online(self, user_id: str) -> bool:
		return bool(self._by_user.get(user_id))

	def online_users(self) -> FrozenSet[str]:
		return frozenset(self._by_user)

	def connection_ids(self) -> Tuple[ConnectionId, ...]:
		return tuple(sorted(self._connections))

	def __contains__(self, connection_id: object) -> bool:
		return connection_id in self._connections

	def __len__(self) -> int:
		return len(self._connections)

	def _presence(self, event: str, user_id: str) -> List[Delivery]:
		targets = tuple(
			sorted(cid for cid, connection in self._connections.items() if connection.user_id != user_id)
		)
		if not targets:
			return []
		return [Delivery(event=event, payload=user_id, targets=targets)]
