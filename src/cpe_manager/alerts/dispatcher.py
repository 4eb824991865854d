"""Notification dispatcher -- fans out alert messages to delivery methods.

Each method is an async callable that receives a notification payload
dict. Methods can have a minimum priority so that low-priority messages
only go to the log while high-priority ones go everywhere.

Built-in method factories:
  - ``create_webhook_handler(url)`` -- POST JSON to a chat webhook
  - ``create_log_handler(logger_name)`` -- structured JSON to Python logger
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Protocol

from cpe_manager.alerts.types import Priority
from cpe_manager.errors import NotificationError

logger = logging.getLogger(__name__)


# -- Type aliases ----------------------------------------------------

NotificationPayload = dict[str, Any]
NotificationHandler = Callable[[NotificationPayload], Awaitable[None]]


class NotificationSink(Protocol):
    async def notify(self, message: str, priority: Priority | str) -> None: ...


# -- Method configuration --------------------------------------------

class MethodConfig:
    """Wraps a method configuration dict for convenience."""

    def __init__(self, config: dict[str, Any]) -> None:
        self.name: str = config["name"]
        self.handler: NotificationHandler = config["handler"]
        self.min_priority: Priority = Priority(config.get("min_priority", "low"))

    def accepts(self, priority: Priority) -> bool:
        """Return True if this method should receive messages at *priority*."""
        return priority >= self.min_priority


# -- Notification Dispatcher -----------------------------------------

class NotificationDispatcher:
    """Fans out notifications to all configured delivery methods.

    Parameters
    ----------
    methods:
        List of method config dicts, each with keys:
        - ``name``: human label (e.g. "webhook", "log")
        - ``handler``: async callable(payload)
        - ``min_priority``: minimum priority string (default "low")
    """

    def __init__(self, methods: list[dict[str, Any]]) -> None:
        self._methods = [MethodConfig(m) for m in methods]

    @property
    def method_names(self) -> list[str]:
        return [m.name for m in self._methods]

    async def notify(self, message: str, priority: Priority | str) -> None:
        """Send *message* to every method whose priority threshold is met.

        If a method handler raises, the error is logged and delivery
        continues to the remaining methods (best-effort fan-out). Raises
        ``NotificationError`` when methods were eligible but none delivered.
        """
        priority = Priority(priority)
        payload: NotificationPayload = {
            "title": message.splitlines()[0] if message else "",
            "text": message,
            "priority": priority.value,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }

        attempted = 0
        delivered = 0
        for method in self._methods:
            if not method.accepts(priority):
                continue
            attempted += 1
            try:
                await method.handler(payload)
            except Exception:
                logger.exception(
                    "Notification delivery failed for method %s (priority=%s)",
                    method.name,
                    priority.value,
                )
            else:
                delivered += 1

        if attempted and not delivered:
            raise NotificationError(
                f"All {attempted} notification method(s) failed (priority={priority.value})"
            )


# -- Webhook payload formatter ---------------------------------------

def format_webhook_payload(payload: NotificationPayload) -> dict[str, Any]:
    """Build the JSON body POSTed to a chat webhook."""
    priority = Priority(payload["priority"])
    emoji = priority.emoji
    return {
        "text": f"{emoji} [{priority.value.upper()}] {payload['text']}",
        "title": payload.get("title", ""),
        "priority": priority.value,
    }


# -- Built-in handler factories --------------------------------------

def create_webhook_handler(
    url: str,
    *,
    session_factory: Callable | None = None,
) -> NotificationHandler:
    """Create an async handler that POSTs notifications to a webhook URL.

    Parameters
    ----------
    url:
        Full webhook URL of the technician chat channel.
    session_factory:
        Optional callable that returns an async HTTP session (for testing).
        Defaults to creating an ``aiohttp.ClientSession``.
    """

    async def _handler(payload: NotificationPayload) -> None:
        body = format_webhook_payload(payload)

        if session_factory is not None:
            session = session_factory()
        else:
            import aiohttp

            session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10))

        async with session:
            resp = await session.post(url, json=body)
            resp.raise_for_status()

    return _handler


def create_log_handler(
    logger_name: str = "cpe_manager.alerts",
) -> NotificationHandler:
    """Create an async handler that writes structured JSON to a Python logger.

    Every notification is logged at INFO level as a single JSON line.
    """
    log = logging.getLogger(logger_name)

    async def _handler(payload: NotificationPayload) -> None:
        log.info(json.dumps(payload, default=str))

    return _handler
