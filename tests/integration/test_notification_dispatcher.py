"""Integration tests for the notification dispatcher.

The dispatcher fans a message out to configured delivery methods (chat
webhook, log). Each method can have a minimum priority threshold.
"""

from __future__ import annotations

import json
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from cpe_manager.alerts.dispatcher import (
    NotificationDispatcher,
    create_log_handler,
    create_webhook_handler,
    format_webhook_payload,
)
from cpe_manager.alerts.types import Priority
from cpe_manager.errors import NotificationError

MESSAGE = "⚠️ *WARNING: DEVICES OFFLINE* ⚠️\n\n1 device(s) offline"


class TestFanOut:
    """Dispatcher fans out messages to all configured methods."""

    async def test_dispatches_to_webhook_and_log(self):
        mock_webhook = AsyncMock()
        mock_log = AsyncMock()
        dispatcher = NotificationDispatcher([
            {"name": "webhook", "handler": mock_webhook, "min_priority": "low"},
            {"name": "log", "handler": mock_log, "min_priority": "low"},
        ])

        await dispatcher.notify(MESSAGE, Priority.HIGH)

        mock_webhook.assert_awaited_once()
        mock_log.assert_awaited_once()
        payload = mock_webhook.await_args.args[0]
        assert payload["title"] == "⚠️ *WARNING: DEVICES OFFLINE* ⚠️"
        assert payload["text"] == MESSAGE
        assert payload["priority"] == "high"
        assert "created_at" in payload

    async def test_dispatches_to_all_methods_even_if_one_fails(self):
        mock_webhook = AsyncMock(side_effect=Exception("chat is down"))
        mock_log = AsyncMock()
        dispatcher = NotificationDispatcher([
            {"name": "webhook", "handler": mock_webhook},
            {"name": "log", "handler": mock_log},
        ])

        await dispatcher.notify(MESSAGE, "medium")

        mock_webhook.assert_awaited_once()
        mock_log.assert_awaited_once()

    async def test_raises_when_every_eligible_method_fails(self):
        mock_webhook = AsyncMock(side_effect=Exception("chat is down"))
        mock_log = AsyncMock(side_effect=Exception("disk full"))
        dispatcher = NotificationDispatcher([
            {"name": "webhook", "handler": mock_webhook},
            {"name": "log", "handler": mock_log},
        ])

        with pytest.raises(NotificationError, match="All 2 notification method"):
            await dispatcher.notify(MESSAGE, Priority.HIGH)

        mock_webhook.assert_awaited_once()
        mock_log.assert_awaited_once()

    async def test_failure_of_filtered_out_method_is_not_raised(self):
        mock_webhook = AsyncMock(side_effect=Exception("chat is down"))
        dispatcher = NotificationDispatcher([
            {"name": "webhook", "handler": mock_webhook, "min_priority": "medium"},
        ])

        await dispatcher.notify(MESSAGE, Priority.LOW)

        mock_webhook.assert_not_awaited()

    def test_method_names(self):
        dispatcher = NotificationDispatcher([
            {"name": "log", "handler": AsyncMock()},
        ])
        assert dispatcher.method_names == ["log"]

    async def test_unknown_priority_rejected(self):
        dispatcher = NotificationDispatcher([])
        with pytest.raises(ValueError):
            await dispatcher.notify(MESSAGE, "urgent")


class TestPriorityFiltering:
    """Methods only receive messages at or above their minimum priority."""

    async def test_filters_below_minimum_priority(self):
        mock_webhook = AsyncMock()
        mock_log = AsyncMock()
        dispatcher = NotificationDispatcher([
            {"name": "webhook", "handler": mock_webhook, "min_priority": "high"},
            {"name": "log", "handler": mock_log, "min_priority": "low"},
        ])

        await dispatcher.notify(MESSAGE, Priority.MEDIUM)

        mock_webhook.assert_not_awaited()
        mock_log.assert_awaited_once()

    async def test_dispatches_at_exact_threshold(self):
        mock_webhook = AsyncMock()
        dispatcher = NotificationDispatcher([
            {"name": "webhook", "handler": mock_webhook, "min_priority": "medium"},
        ])

        await dispatcher.notify(MESSAGE, Priority.MEDIUM)

        mock_webhook.assert_awaited_once()


class TestWebhookPayload:
    def test_payload_format(self):
        body = format_webhook_payload(
            {"title": "Alert", "text": "RX low", "priority": "high"},
        )
        assert body["text"].startswith("\U0001f534 [HIGH] ")
        assert body["text"].endswith("RX low")
        assert body["title"] == "Alert"
        assert body["priority"] == "high"


class TestWebhookHandler:
    async def test_webhook_handler_posts_json(self):
        webhook_url = "https://chat.example.net/hooks/abc"

        mock_response = AsyncMock()
        mock_response.raise_for_status = MagicMock()

        mock_session = AsyncMock()
        mock_session.post = AsyncMock(return_value=mock_response)
        mock_session.__aenter__ = AsyncMock(return_value=mock_session)
        mock_session.__aexit__ = AsyncMock(return_value=False)

        handler = create_webhook_handler(webhook_url, session_factory=lambda: mock_session)
        await handler({"title": "t", "text": "body", "priority": "medium"})

        mock_session.post.assert_awaited_once()
        call = mock_session.post.await_args
        assert call.args[0] == webhook_url
        assert call.kwargs["json"]["priority"] == "medium"
        mock_response.raise_for_status.assert_called_once()

    async def test_webhook_handler_propagates_http_errors(self):
        mock_response = AsyncMock()
        mock_response.raise_for_status = MagicMock(side_effect=RuntimeError("500"))

        mock_session = AsyncMock()
        mock_session.post = AsyncMock(return_value=mock_response)
        mock_session.__aenter__ = AsyncMock(return_value=mock_session)
        mock_session.__aexit__ = AsyncMock(return_value=False)

        handler = create_webhook_handler("https://x", session_factory=lambda: mock_session)
        with pytest.raises(RuntimeError):
            await handler({"title": "t", "text": "body", "priority": "high"})


class TestLogHandler:
    async def test_log_handler_writes_json(self, caplog):
        handler = create_log_handler("cpe_manager.alerts.test")
        payload = {"title": "t", "text": "body", "priority": "low"}

        with caplog.at_level(logging.INFO, logger="cpe_manager.alerts.test"):
            await handler(payload)

        assert len(caplog.records) == 1
        assert json.loads(caplog.records[0].getMessage()) == payload
