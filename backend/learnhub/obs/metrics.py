"""Central registry for Prometheus metrics used across the gateway."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNTER = Counter(
	"learnhub_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"learnhub_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"learnhub_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"learnhub_socketio_events_total",
	"Socket.IO events received per namespace",
	["namespace", "event"],
)

SOCKET_DELIVERIES = Counter(
	"learnhub_socketio_deliveries_total",
	"Outbound Socket.IO events delivered, one per recipient connection",
	["namespace", "event"],
)

SOCKET_AUTH_FAILURES = Counter(
	"learnhub_socketio_auth_failures_total",
	"Socket.IO handshakes refused",
	["reason"],
)

SOCKET_REJECTED_EVENTS = Counter(
	"learnhub_socketio_rejected_events_total",
	"Inbound events dropped by validation or rate limiting",
	["event", "code"],
)

SOCKET_HANDLER_ERRORS = Counter(
	"learnhub_socketio_handler_errors_total",
	"Unexpected exceptions raised by inbound event handlers",
	["event"],
)

GATEWAY_ROOMS = Gauge(
	"learnhub_gateway_rooms",
	"Rooms with at least one member",
)

GATEWAY_ONLINE_USERS = Gauge(
	"learnhub_gateway_online_users",
	"Users with at least one live connection",
)

GATEWAY_TYPING_USERS = Gauge(
	"learnhub_gateway_typing_entries",
	"(room, user) pairs currently marked as typing",
)

TYPING_EXPIRED = Counter(
	"learnhub_gateway_typing_expired_total",
	"Typing entries cleared by the idle sweeper",
)

REDIS_UP = Gauge(
	"learnhub_redis_up",
	"Redis availability as seen by the readiness probe",
)

REDIS_LATENCY = Histogram(
	"learnhub_redis_ping_seconds",
	"Redis ping latency",
	buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def socket_delivered(namespace: str, event: str, count: int) -> None:
	if count > 0:
		SOCKET_DELIVERIES.labels(namespace=namespace, event=event).inc(count)


def socket_auth_failed(reason: str) -> None:
	SOCKET_AUTH_FAILURES.labels(reason=reason).inc()


def socket_event_rejected(event: str, code: str) -> None:
	SOCKET_REJECTED_EVENTS.labels(event=event, code=code).inc()


def socket_handler_error(event: str) -> None:
	SOCKET_HANDLER_ERRORS.labels(event=event).inc()


def gateway_state(*, rooms: int, online_users: int, typing_entries: int) -> None:
	GATEWAY_ROOMS.set(rooms)
	GATEWAY_ONLINE_USERS.set(online_users)
	GATEWAY_TYPING_USERS.set(typing_entries)


def typing_expired(count: int) -> None:
	if count > 0:
		TYPING_EXPIRED.inc(count)


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)
