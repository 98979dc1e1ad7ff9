"""Realtime gateway exports."""

from .errors import AuthenticationError, GatewayError, RateLimitedError, ValidationError
from .gateway import Gateway
from .identity import IdentityVerifier, PostgresUserDirectory, UserDirectory
from .models import Connection, Delivery, Identity, Message, Notification, chat_room, private_room

__all__ = [
	"AuthenticationError",
	"Connection",
	"Delivery",
	"Gateway",
	"GatewayError",
	"Identity",
	"IdentityVerifier",
	"Message",
	"Notification",
	"PostgresUserDirectory",
	"RateLimitedError",
	"UserDirectory",
	"ValidationError",
	"chat_room",
	"private_room",
]
