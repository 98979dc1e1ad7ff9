"""Authentication helpers for FastAPI endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from learnhub.infra import jwt as jwt_helper

_bearer_scheme = HTTPBearer(auto_error=False)


async def get_caller_id(
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> str:
	"""Resolve the calling user (or service) from a bearer JWT."""
	if not credentials or credentials.scheme.lower() != "bearer":
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	try:
		payload = jwt_helper.decode_access(credentials.credentials)
	except Exception:
		# Normalise all decode failures to invalid_token for the API surface
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token") from None
	subject = jwt_helper.subject_of(payload)
	if subject is None:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	return subject
