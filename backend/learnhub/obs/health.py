"""Health check helpers for liveness and readiness probes."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from learnhub.infra import postgres
from learnhub.infra.redis import redis_client
from learnhub.obs import metrics

if TYPE_CHECKING:  # pragma: no cover - type hints only
	from learnhub.realtime.gateway import Gateway

LOGGER = logging.getLogger(__name__)


async def _redis_status(timeout: float = 0.2) -> Dict[str, Any]:
	start = perf_counter()
	try:
		await asyncio.wait_for(redis_client.ping(), timeout=timeout)
		latency = perf_counter() - start
		metrics.mark_redis(True, latency_seconds=latency)
		return {"ok": True, "latency_ms": round(latency * 1000, 2)}
	except Exception as exc:  # pragma: no cover - depends on runtime
		metrics.mark_redis(False)
		LOGGER.warning("Redis readiness check failed", exc_info=True)
		return {"ok": False, "error": str(exc)}


async def _postgres_status(timeout: float = 0.3) -> Dict[str, Any]:
	start = perf_counter()
	try:
		pool = await postgres.get_pool()
		async with pool.acquire() as conn:
			await asyncio.wait_for(conn.execute("SELECT 1"), timeout=timeout)
	except Exception as exc:  # pragma: no cover - depends on runtime
		LOGGER.warning("Postgres readiness query failed", exc_info=True)
		return {"ok": False, "error": str(exc)}
	return {"ok": True, "latency_ms": round((perf_counter() - start) * 1000, 2)}


def _gateway_status(gateway: Optional["Gateway"]) -> Dict[str, Any]:
	if gateway is None:
		return {"ok": False, "error": "gateway_not_started"}
	return {"ok": True, **gateway.stats()}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness(gateway: Optional["Gateway"]) -> Tuple[int, Dict[str, Any]]:
	redis_state = await _redis_status()
	postgres_state = await _postgres_status()
	gateway_state = _gateway_status(gateway)
	ok = redis_state.get("ok") and postgres_state.get("ok") and gateway_state.get("ok")
	status_code = 200 if ok else 503
	return (
		status_code,
		{
			"status": "ok" if ok else "degraded",
			"checks": {
				"redis": redis_state,
				"postgres": postgres_state,
				"gateway": gateway_state,
			},
		},
	)
