import asyncio
from unittest.mock import AsyncMock

import pytest
import socketio

from learnhub.realtime.gateway import Gateway
from learnhub.realtime.handlers import HANDLERS
from learnhub.realtime.identity import IdentityVerifier
from learnhub.realtime.sockets import GatewayNamespace, bearer_token
from learnhub.settings import settings


def _scope_with_authorization(token: str) -> dict:
	return {
		"headers": [(b"authorization", f"Bearer {token}".encode())],
	}


def _namespace(directory, gateway=None) -> GatewayNamespace:
	server = socketio.AsyncServer(async_mode="asgi")
	namespace = GatewayNamespace(gateway or Gateway(), IdentityVerifier(directory))
	server.register_namespace(namespace)
	namespace.emit = AsyncMock()
	return namespace


def _emitted(namespace) -> list:
	return [(call.args[0], call.args[1], call.kwargs.get("room")) for call in namespace.emit.await_args_list]


async def _connect(namespace, sid: str, token: str) -> None:
	await namespace.trigger_event("connect", sid, {"asgi.scope": _scope_with_authorization(token)})


def test_bearer_token_sources():
	assert bearer_token({"asgi.scope": {"headers": []}}, {"token": "abc"}) == "abc"
	assert bearer_token({"asgi.scope": _scope_with_authorization("xyz")}, None) == "xyz"
	assert bearer_token({"asgi.scope": {"headers": [], "auth": {"token": "scoped"}}}, None) == "scoped"
	assert bearer_token({"asgi.scope": {"headers": [(b"authorization", b"Basic Zm9v")]}}, None) is None
	assert bearer_token({"asgi.scope": {"headers": []}}, None) is None


@pytest.mark.asyncio
async def test_connect_requires_token(directory):
	namespace = _namespace(directory)

	with pytest.raises(ConnectionRefusedError):
		await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": []}})

	assert len(namespace.gateway.registry) == 0
	assert namespace.emit.await_count == 0


@pytest.mark.asyncio
async def test_refused_handshake_announces_nothing(directory, make_token):
	namespace = _namespace(directory)
	await _connect(namespace, "sid-b", make_token("u-bob"))
	namespace.emit.reset_mock()

	for token in (make_token("u-alice", ttl_seconds=-60), "garbage", make_token("u-nobody")):
		with pytest.raises(ConnectionRefusedError):
			await _connect(namespace, "sid-a", token)

	assert namespace.emit.await_count == 0
	assert namespace.gateway.registry.online_users() == {"u-bob"}
	assert "sid-a" not in namespace.gateway.registry


@pytest.mark.asyncio
async def test_connect_with_auth_payload_emits_ready(directory, make_token):
	namespace = _namespace(directory)

	await namespace.trigger_event("connect", "sid-a", {"asgi.scope": {"headers": []}}, {"token": make_token("u-alice")})

	assert _emitted(namespace) == [("ready", {"userId": "u-alice", "displayName": "Alice"}, "sid-a")]
	assert namespace.gateway.rooms.members("user:u-alice") == {"sid-a"}


@pytest.mark.asyncio
async def test_chat_between_two_users(directory, make_token):
	namespace = _namespace(directory)
	await _connect(namespace, "sid-a", make_token("u-alice"))
	await _connect(namespace, "sid-b", make_token("u-bob"))
	assert ("user-online", "u-bob", "sid-a") in _emitted(namespace)

	await namespace.trigger_event("join-chat", "sid-a", "42")
	await namespace.trigger_event("join-chat", "sid-b", "42")
	namespace.emit.reset_mock()

	await namespace.trigger_event("typing-start", "sid-a", {"chatId": "42"})
	await namespace.trigger_event("send-message", "sid-a", {"chatId": "42", "content": "hello"})

	events = _emitted(namespace)
	assert events[0] == ("user-typing", {"userId": "u-alice", "userName": "Alice", "roomId": "chat:42", "chatId": "42"}, "sid-b")
	messages = [(room, data["content"]) for event, data, room in events if event == "new-message"]
	assert messages == [("sid-a", "hello"), ("sid-b", "hello")]
	notices = [room for event, _, room in events if event == "notification"]
	assert notices == ["sid-b"]


@pytest.mark.asyncio
async def test_abrupt_disconnect_stops_typing_then_goes_offline(directory, make_token):
	namespace = _namespace(directory)
	await _connect(namespace, "sid-a", make_token("u-alice"))
	await _connect(namespace, "sid-b", make_token("u-bob"))
	await namespace.trigger_event("join-room", "sid-a", "chat:7")
	await namespace.trigger_event("join-room", "sid-b", "chat:7")
	await namespace.trigger_event("typing-start", "sid-a", "chat:7")
	namespace.emit.reset_mock()

	await namespace.trigger_event("disconnect", "sid-a")

	assert _emitted(namespace) == [
		("user-stop-typing", {"userId": "u-alice", "roomId": "chat:7", "chatId": "7"}, "sid-b"),
		("user-offline", "u-alice", "sid-b"),
	]
	assert namespace.gateway.stats()["typing_entries"] == 0


@pytest.mark.asyncio
async def test_second_tab_does_not_repeat_presence(directory, make_token):
	namespace = _namespace(directory)
	await _connect(namespace, "sid-b", make_token("u-bob"))
	await _connect(namespace, "sid-a1", make_token("u-alice"))
	await _connect(namespace, "sid-a2", make_token("u-alice"))
	await namespace.trigger_event("disconnect", "sid-a1")

	presence = [(event, room) for event, _, room in _emitted(namespace) if event.startswith("user-o")]
	assert presence == [("user-online", "sid-b")]

	await namespace.trigger_event("disconnect", "sid-a2")
	presence = [(event, room) for event, _, room in _emitted(namespace) if event.startswith("user-o")]
	assert presence[-1] == ("user-offline", "sid-b")


@pytest.mark.asyncio
async def test_invalid_event_emits_error_to_sender_only(directory, make_token):
	namespace = _namespace(directory)
	await _connect(namespace, "sid-a", make_token("u-alice"))
	await namespace.trigger_event("join-room", "sid-a", "chat:1")
	namespace.emit.reset_mock()

	await namespace.trigger_event("send-message", "sid-a", {"roomId": "chat:1", "content": "   "})

	assert _emitted(namespace) == [
		("error", {"code": "empty_message", "message": "message content is empty", "event": "send-message"}, "sid-a")
	]


@pytest.mark.asyncio
async def test_validation_errors_can_be_silenced(directory, make_token, monkeypatch):
	monkeypatch.setattr(settings, "emit_validation_errors", False)
	namespace = _namespace(directory)
	await _connect(namespace, "sid-a", make_token("u-alice"))
	namespace.emit.reset_mock()

	await namespace.trigger_event("join-room", "sid-a", "user:u-bob")

	assert namespace.emit.await_count == 0


@pytest.mark.asyncio
async def test_unknown_events_are_ignored(directory, make_token):
	namespace = _namespace(directory)
	await _connect(namespace, "sid-a", make_token("u-alice"))
	namespace.emit.reset_mock()

	await namespace.trigger_event("drop-tables", "sid-a", {})

	assert namespace.emit.await_count == 0


@pytest.mark.asyncio
async def test_rate_limited_message_is_dropped(directory, make_token, monkeypatch):
	monkeypatch.setattr(settings, "send_rate_limit_per_minute", 1)
	namespace = _namespace(directory)
	await _connect(namespace, "sid-a", make_token("u-alice"))
	await namespace.trigger_event("join-room", "sid-a", "chat:1")
	namespace.emit.reset_mock()

	await namespace.trigger_event("send-message", "sid-a", {"roomId": "chat:1", "content": "one"})
	await namespace.trigger_event("send-message", "sid-a", {"roomId": "chat:1", "content": "two"})

	events = _emitted(namespace)
	assert [data["content"] for event, data, _ in events if event == "new-message"] == ["one"]
	assert events[-1][0] == "error"
	assert events[-1][1]["code"] == "rate_limited:send"


@pytest.mark.asyncio
async def test_handler_crash_does_not_poison_connection(directory, make_token, monkeypatch):
	def _boom(gateway, connection_id, payload):
		raise RuntimeError("boom")

	monkeypatch.setitem(HANDLERS, "typing-stop", _boom)
	namespace = _namespace(directory)
	await _connect(namespace, "sid-a", make_token("u-alice"))
	await _connect(namespace, "sid-b", make_token("u-bob"))
	await namespace.trigger_event("join-room", "sid-b", "chat:1")

	await namespace.trigger_event("typing-stop", "sid-a", "chat:1")
	namespace.emit.reset_mock()
	await namespace.trigger_event("typing-start", "sid-a", "chat:1")

	assert [event for event, _, _ in _emitted(namespace)] == ["user-typing"]


@pytest.mark.asyncio
async def test_events_before_admission_are_dropped(directory):
	namespace = _namespace(directory)

	await namespace.trigger_event("join-room", "sid-ghost", "chat:1")

	assert namespace.gateway.stats()["rooms"] == 0
	assert namespace.emit.await_count == 0


@pytest.mark.asyncio
async def test_disconnect_during_lookup_aborts_admission(directory, make_token):
	release = asyncio.Event()
	lookup = directory.get

	async def _slow_get(user_id):
		await release.wait()
		return await lookup(user_id)

	directory.get = _slow_get
	namespace = _namespace(directory)

	task = asyncio.create_task(_connect(namespace, "sid-a", make_token("u-alice")))
	await asyncio.sleep(0)
	await namespace.trigger_event("disconnect", "sid-a")
	release.set()

	with pytest.raises(ConnectionRefusedError):
		await task
	assert "sid-a" not in namespace.gateway.registry
	assert namespace.gateway.rooms.members("user:u-alice") == frozenset()


@pytest.mark.asyncio
async def test_slow_lookup_times_out(directory, make_token, monkeypatch):
	monkeypatch.setattr(settings, "handshake_timeout_seconds", 0.05)

	async def _hang(user_id):
		await asyncio.sleep(5)

	directory.get = _hang
	namespace = _namespace(directory)

	with pytest.raises(ConnectionRefusedError):
		await _connect(namespace, "sid-a", make_token("u-alice"))
	assert len(namespace.gateway.registry) == 0


@pytest.mark.asyncio
async def test_directory_failure_refuses_connection(directory, make_token):
	async def _down(user_id):
		raise OSError("db unreachable")

	directory.get = _down
	namespace = _namespace(directory)

	with pytest.raises(ConnectionRefusedError):
		await _connect(namespace, "sid-a", make_token("u-alice"))


@pytest.mark.asyncio
async def test_notify_counts_recipients(directory, make_token):
	namespace = _namespace(directory)
	await _connect(namespace, "sid-a1", make_token("u-alice"))
	await _connect(namespace, "sid-a2", make_token("u-alice"))
	await _connect(namespace, "sid-b", make_token("u-bob"))
	namespace.emit.reset_mock()

	assert await namespace.notify({"userId": "u-alice", "type": "enrollment", "message": "Enrolled"}) == 2
	assert await namespace.notify({"userId": "u-carol", "type": "enrollment", "message": "Enrolled"}) == 0
	assert await namespace.notify({"type": "announcement", "message": "Hi all"}) == 3
	assert [room for _, _, room in _emitted(namespace)] == ["sid-a1", "sid-a2", "sid-a1", "sid-a2", "sid-b"]


@pytest.mark.asyncio
async def test_failed_emit_does_not_block_other_recipients(directory, make_token):
	namespace = _namespace(directory)
	await _connect(namespace, "sid-a", make_token("u-alice"))
	await _connect(namespace, "sid-b", make_token("u-bob"))

	async def _flaky(event, data, room=None):
		if room == "sid-a":
			raise RuntimeError("transport closed")

	namespace.emit = AsyncMock(side_effect=_flaky)
	assert await namespace.notify({"type": "announcement", "message": "Hi"}) == 2
	assert [call.kwargs["room"] for call in namespace.emit.await_args_list] == ["sid-a", "sid-b"]


@pytest.mark.asyncio
async def test_message_into_private_room_is_refused(directory, make_token):
	namespace = _namespace(directory)
	await _connect(namespace, "sid-a", make_token("u-alice"))
	await _connect(namespace, "sid-b", make_token("u-bob"))
	namespace.emit.reset_mock()

	await namespace.trigger_event("send-message", "sid-a", {"roomId": "user:u-bob", "content": "psst"})
	await namespace.trigger_event("typing-start", "sid-a", {"roomId": "user:u-bob"})

	events = _emitted(namespace)
	assert [(event, data["code"], room) for event, data, room in events] == [
		("error", "reserved_room", "sid-a"),
		("error", "reserved_room", "sid-a"),
	]
	assert namespace.gateway.stats()["typing_entries"] == 0
