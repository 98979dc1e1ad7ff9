"""Fixed-window counters in Redis, shared by every gateway worker."""

from __future__ import annotations

import time
from typing import Optional

from learnhub.infra.redis import redis_client


def window_key(kind: str, actor_id: str, window_seconds: int, now: float) -> str:
	slot = int(now // window_seconds)
	return f"rl:{kind}:{actor_id}:{slot}:{window_seconds}"


async def hit(kind: str, actor_id: str, *, window_seconds: int = 60, now: Optional[float] = None) -> int:
	"""Count one more operation in the current window and return the running total."""
	window = max(1, int(window_seconds))
	key = window_key(kind, actor_id, window, time.time() if now is None else now)
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(key)
		pipe.expire(key, window)
		count, _ = await pipe.execute()
	return int(count)


async def allow(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> bool:
	"""Return True when the operation is still within the allowed budget."""
	if limit <= 0:
		return False
	return await hit(kind, actor_id, window_seconds=window_seconds, now=now) <= limit
