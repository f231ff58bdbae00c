"""structlog setup for the notifier.

One delivery produces a short trail of events that can be followed by
repo and tag:
  webhook_received -> build_resolution_complete -> slack_message_posted
with ``http_request`` from the middleware around it. The resolver's
``reason`` and ``attempts`` fields only ever show up here.

Two credentials pass through every delivery (the Slack bot token in the
webhook path and the CircleCI token in the query string), so the chain
masks known secret keys before rendering, and httpx's own request log,
which prints full URLs, is held at WARNING.

Usage:
    setup_logging(settings.environment, settings.log_level)
    logger = get_logger(__name__)
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog

REDACTED = "***"

SECRET_KEYS = frozenset(
    {
        "token",
        "circle-token",
        "circle_token",
        "circleci_token",
        "slack_token",
        "authorization",
    }
)

# Libraries whose INFO lines would echo request URLs with credentials in them
_QUIET_LOGGERS = ("httpx", "httpcore")


def redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask values of secret-looking keys in an event dict."""
    for key in event_dict.keys() & SECRET_KEYS:
        if event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def build_processors(environment: str) -> list[Any]:
    """Processor chain: context, level, timestamp, redaction, renderer."""
    if environment == "production":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]


def setup_logging(environment: str = "development", log_level: str = "INFO") -> None:
    """Configure structlog and stdlib logging from already-loaded settings.

    Args:
        environment: "production" renders JSON, anything else the console
        log_level: Level name; unknown names fall back to INFO
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=build_processors(environment),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # uvicorn logs through the standard library
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> Any:
    return structlog.get_logger(name)
