"""Internal endpoint letting HTTP business logic push notifications to connected users."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from learnhub.infra.auth import get_caller_id
from learnhub.realtime.sockets import GatewayNamespace

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", tags=["notifications"])


class NotificationRequest(BaseModel):
	userId: Optional[str] = Field(default=None, description="Target user; omit to broadcast to everyone")
	type: str = Field(default="info", max_length=64)
	message: str = Field(..., min_length=1, max_length=1000)
	payload: Dict[str, Any] = Field(default_factory=dict)


class NotificationResponse(BaseModel):
	delivered: int


def get_namespace(request: Request) -> GatewayNamespace:
	namespace = getattr(request.app.state, "realtime", None)
	if namespace is None:
		raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="gateway_unavailable")
	return namespace


@router.post("/notifications", response_model=NotificationResponse, status_code=status.HTTP_202_ACCEPTED)
async def send_notification_endpoint(
	body: NotificationRequest,
	caller_id: str = Depends(get_caller_id),
	namespace: GatewayNamespace = Depends(get_namespace),
) -> NotificationResponse:
	data: Dict[str, Any] = {k: v for k, v in body.payload.items() if k != "userId"}
	data["type"] = body.type
	data["message"] = body.message
	if body.userId:
		data["userId"] = body.userId
	delivered = await namespace.notify(data)
	logger.info(
		"notification pushed caller=%s target=%s delivered=%d",
		caller_id,
		body.userId or "*",
		delivered,
	)
	return NotificationResponse(delivered=delivered)
