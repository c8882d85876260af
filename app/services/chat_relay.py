"""Forwards chat messages to the workflow webhook that serves the caller's role."""

import logging
from datetime import datetime
from typing import Any, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import AuthorizationDenied, UpstreamFailure
from app.core.observability import LatencyTracker
from app.core.roles import Role, parse_role

logger = logging.getLogger(__name__)


class ChatWebhookRelay:
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport
        self.latency_tracker = LatencyTracker()

    def select_webhook(self, role) -> str:
        """
        Board and executive callers have dedicated workflows that fall back to
        the general notebook workflow when unset; administrators always use it.
        """
        role = parse_role(role)
        if role is None:
            raise AuthorizationDenied("User role not found")

        if role == Role.BOARD:
            url = settings.BOARD_CHAT_URL or settings.NOTEBOOK_CHAT_URL
        elif role == Role.EXECUTIVE:
            url = settings.EXECUTIVE_CHAT_URL or settings.NOTEBOOK_CHAT_URL
        else:
            url = settings.NOTEBOOK_CHAT_URL

        if not url:
            raise UpstreamFailure(f"Chat webhook URL not configured for {role.value} role")
        return url

    def build_payload(self, session_id: str, message: str, user_id: str, role) -> dict:
        return {
            "session_id": session_id,
            "message": message,
            "user_id": user_id,
            "user_role": parse_role(role).value,
            "policy_document_id": session_id,
            "timestamp": datetime.utcnow().isoformat(),
        }

    async def forward(self, session_id: str, message: str, user_id: str, role) -> Any:
        url = self.select_webhook(role)
        if not settings.NOTEBOOK_GENERATION_AUTH:
            raise UpstreamFailure("Webhook authentication not configured")

        payload = self.build_payload(session_id, message, user_id, role)
        headers = {"Authorization": settings.NOTEBOOK_GENERATION_AUTH}
        logger.info(f"Forwarding chat message for session {session_id} as {payload['user_role']}")

        try:
            with self.latency_tracker.measure("chat_webhook"):
                async with httpx.AsyncClient(
                    transport=self.transport, timeout=settings.CHAT_WEBHOOK_TIMEOUT_SECONDS
                ) as client:
                    response = await client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Chat webhook unreachable: {str(e)}")
            raise UpstreamFailure(f"Webhook request failed: {str(e)}", original_error=e)

        if response.status_code >= 400:
            logger.error(f"Chat webhook responded with {response.status_code}: {response.text}")
            raise UpstreamFailure(f"Webhook responded with status: {response.status_code}")

        try:
            return response.json()
        except ValueError:
            return response.text
