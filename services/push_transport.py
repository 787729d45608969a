"""
Push transports

Delivery channel for live match events, keyed by match id. Only the contract
matters to the scoring core:

    await transport.send(match_id, event_type, payload)

Transports:
    LoggingPushTransport   - default; writes each event to the structured log
    WebhookPushTransport   - POSTs each event to a configured URL (retry + circuit breaker)
    InMemoryPushTransport  - keeps events in a list (tests, local development)
"""

import asyncio
import hashlib
import hmac
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol

from core.logging import get_logger
from core.resilience import WebhookClient
from core.settings import settings


class PushTransport(Protocol):
    async def send(self, match_id: int, event_type: str, payload: dict[str, Any]) -> None:
        ...


class LoggingPushTransport:
    def __init__(self):
        self.log = get_logger("push_transport")

    async def send(self, match_id: int, event_type: str, payload: dict[str, Any]) -> None:
        self.log.info("push_event", match_id=match_id, event_type=event_type, payload=payload)


class WebhookPushTransport:
    """
    Delivers events as JSON POSTs.

    The body is {"match_id", "event_type", "payload"}. When a secret is set,
    an X-Signature header carries the hex HMAC-SHA256 of the body.
    """

    def __init__(
        self,
        url: str,
        secret: Optional[str] = None,
        client: Optional[WebhookClient] = None,
    ):
        self.url = url
        self.secret = secret
        self.client = client or WebhookClient()
        self.log = get_logger("push_transport")

    def _headers(self, body: bytes) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.secret:
            digest = hmac.new(self.secret.encode(), body, hashlib.sha256).hexdigest()
            headers["X-Signature"] = digest
        return headers

    async def send(self, match_id: int, event_type: str, payload: dict[str, Any]) -> None:
        body = json.dumps(
            {"match_id": match_id, "event_type": event_type, "payload": payload},
            default=str,
        ).encode()
        # requests is blocking; keep it off the event loop
        await asyncio.to_thread(
            self.client.post, self.url, body, self._headers(body)
        )
        self.log.debug("push_event_delivered", match_id=match_id, event_type=event_type)


@dataclass
class PushedEvent:
    match_id: int
    event_type: str
    payload: dict[str, Any]
    sent_at: datetime


class InMemoryPushTransport:
    def __init__(self):
        self.events: list[PushedEvent] = []

    async def send(self, match_id: int, event_type: str, payload: dict[str, Any]) -> None:
        self.events.append(PushedEvent(match_id, event_type, payload, datetime.utcnow()))

    def of_type(self, event_type: str) -> list[PushedEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


def create_push_transport() -> PushTransport:
    """Webhook transport when PUSH_WEBHOOK_URL is set, otherwise the log transport."""
    if settings.push_webhook_url:
        secret = settings.push_webhook_secret.get_secret_value() if settings.push_webhook_secret else None
        return WebhookPushTransport(settings.push_webhook_url, secret=secret)
    return LoggingPushTransport()
