"""Tests for push transports and core.resilience."""

from __future__ import annotations

import hashlib
import hmac
import json
from unittest.mock import patch

import pytest
import requests

from core.resilience import (
    PushDeliveryError,
    PushRejectedError,
    StorageUnavailableError,
    WebhookClient,
    check_webhook_response,
    with_retry,
)
from services.push_transport import LoggingPushTransport, WebhookPushTransport, create_push_transport


def response(status: int, text: str = "") -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = text.encode()
    return resp


class RecordingClient:
    def __init__(self):
        self.calls = []

    def post(self, url, body, headers):
        self.calls.append((url, body, headers))
        return response(200)


class TestWebhookResponses:
    @pytest.mark.parametrize("status", [429, 500, 503])
    def test_transient_statuses(self, status):
        with pytest.raises(PushDeliveryError) as exc:
            check_webhook_response(response(status))
        assert exc.value.status_code == status

    def test_client_error_is_not_retryable(self):
        with pytest.raises(PushRejectedError):
            check_webhook_response(response(400, "bad payload"))

    def test_success(self):
        assert check_webhook_response(response(204)) is None


class TestWebhookClient:
    def test_retries_connection_errors(self):
        client = WebhookClient(max_retries=3, base_delay=0, breaker=None)
        with patch(
            "core.resilience.requests.post",
            side_effect=[requests.exceptions.ConnectionError("refused"), response(200)],
        ) as post:
            assert client.post("https://hooks.test/live", b"{}", {}).status_code == 200
        assert post.call_count == 2

    def test_gives_up_after_max_retries(self):
        client = WebhookClient(max_retries=2, base_delay=0, breaker=None)
        with patch("core.resilience.requests.post", return_value=response(502)) as post:
            with pytest.raises(PushDeliveryError):
                client.post("https://hooks.test/live", b"{}", {})
        assert post.call_count == 2

    def test_rejection_is_not_retried(self):
        client = WebhookClient(max_retries=3, base_delay=0, breaker=None)
        with patch("core.resilience.requests.post", return_value=response(404)) as post:
            with pytest.raises(PushRejectedError):
                client.post("https://hooks.test/live", b"{}", {})
        assert post.call_count == 1


class TestWithRetry:
    def test_storage_errors_are_retried(self):
        attempts = []

        @with_retry(max_attempts=3, base_delay=0)
        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise StorageUnavailableError("connection reset")
            return "stored"

        assert flaky() == "stored"
        assert len(attempts) == 3

    def test_other_errors_are_not_retried(self):
        attempts = []

        @with_retry(max_attempts=3, base_delay=0)
        def broken():
            attempts.append(1)
            raise ValueError("bad lineup")

        with pytest.raises(ValueError):
            broken()
        assert len(attempts) == 1


class TestWebhookPushTransport:
    @pytest.mark.asyncio
    async def test_body_and_signature(self):
        client = RecordingClient()
        transport = WebhookPushTransport("https://hooks.test/live", secret="s3cret", client=client)

        await transport.send(12, "golden_goal", {"winner_id": 3})

        ((url, body, headers),) = client.calls
        assert url == "https://hooks.test/live"
        assert json.loads(body) == {"match_id": 12, "event_type": "golden_goal", "payload": {"winner_id": 3}}
        expected = hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()
        assert headers["X-Signature"] == expected

    @pytest.mark.asyncio
    async def test_unsigned_without_secret(self):
        client = RecordingClient()
        await WebhookPushTransport("https://hooks.test/live", client=client).send(1, "scoring_play", {})
        assert "X-Signature" not in client.calls[0][2]

    def test_log_transport_is_the_default(self):
        assert isinstance(create_push_transport(), LoggingPushTransport)
