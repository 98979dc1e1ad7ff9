"""Policy helpers for the realtime gateway."""

from __future__ import annotations

import logging
from typing import Callable, Dict, Tuple

from redis.exceptions import RedisError

from learnhub.infra.rate_limit import allow as rate_allow
from learnhub.realtime.errors import RateLimitedError
from learnhub.realtime.models import Identity, RoomId
from learnhub.settings import settings

logger = logging.getLogger(__name__)

# inbound event -> (limit kind, per-minute budget)
EVENT_LIMITS: Dict[str, Tuple[str, Callable[[], int]]] = {
	"send-message": ("send", lambda: settings.send_rate_limit_per_minute),
	"typing-start": ("typing", lambda: settings.typing_rate_limit_per_minute),
	"send-notification": ("notify", lambda: settings.notify_rate_limit_per_minute),
}


async def enforce_event_limit(event: str, user_id: str) -> None:
	if not settings.rate_limits_enabled:
		return
	entry = EVENT_LIMITS.get(event)
	if entry is None:
		return
	kind, budget = entry
	try:
		allowed = await rate_allow(f"socket:{kind}", user_id, limit=budget(), window_seconds=60)
	except (RedisError, OSError):
		logger.warning("rate limit check unavailable kind=%s", kind, exc_info=True)
		return
	if not allowed:
		raise RateLimitedError(f"rate_limited:{kind}")


class RoomAccessPolicy:
	"""Decides whether an identity may join a room.

	Any authenticated connection may join any non-private room; deployments
	that need course-entitlement checks subclass this and pass it to the
	gateway.
	"""

	def can_join(self, identity: Identity, room_id: RoomId) -> bool:
		return True
