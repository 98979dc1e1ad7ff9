"""Errors raised by the realtime gateway."""

from __future__ import annotations


class GatewayError(RuntimeError):
	def __init__(self, code: str, *, message: str | None = None) -> None:
		super().__init__(message or code)
		self.code = code
		self.detail = message or code


class AuthenticationError(GatewayError):
	"""Handshake credential missing, invalid, expired or unknown; the connection is refused."""


class ValidationError(GatewayError):
	"""A single inbound event was malformed and has been dropped."""


class RateLimitedError(GatewayError):
	"""A single inbound event exceeded the sender's budget and has been dropped."""
