"""Handshake credential verification."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import jwt

from learnhub.infra import jwt as jwt_helper
from learnhub.infra import postgres
from learnhub.realtime.errors import AuthenticationError
from learnhub.realtime.models import Identity

logger = logging.getLogger(__name__)


class UserDirectory(Protocol):
	async def get(self, user_id: str) -> Optional[Identity]:
		...


class PostgresUserDirectory:
	"""Resolves users from the marketplace ``users`` table."""

	query = "SELECT id, name FROM users WHERE id::text = $1"

	async def get(self, user_id: str) -> Optional[Identity]:
		pool = await postgres.get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(self.query, user_id)
		if row is None:
			return None
		return Identity(id=str(row["id"]), display_name=str(row["name"] or ""))


class IdentityVerifier:
	def __init__(self, directory: UserDirectory) -> None:
		self._directory = directory

	async def verify(self, token: Optional[str]) -> Identity:
		"""Decode the bearer token and resolve its subject to a known user."""
		if not token or not isinstance(token, str):
			raise AuthenticationError("missing_token")
		try:
			claims = jwt_helper.decode_access(token)
		except jwt.ExpiredSignatureError:
			raise AuthenticationError("expired_token") from None
		except jwt.InvalidTokenError:
			raise AuthenticationError("invalid_token") from None
		user_id = jwt_helper.subject_of(claims)
		if user_id is None:
			raise AuthenticationError("invalid_token")
		identity = await self._directory.get(user_id)
		if identity is None:
			logger.info("handshake for unknown user=%s", user_id)
			raise AuthenticationError("unknown_user")
		return identity
