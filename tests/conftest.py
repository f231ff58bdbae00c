"""Shared test fixtures for the release notifier."""

from __future__ import annotations

import copy
from collections.abc import Awaitable, Callable
from typing import Any

import pytest
import structlog

from release_notifier.schemas import ReleaseEvent

RELEASE_PAYLOAD: dict[str, Any] = {
    "action": "published",
    "release": {
        "name": "Version 1.0.0",
        "body": "Fixes #12 and closes #34.",
        "tag_name": "v1.0.0",
        "html_url": "https://github.com/myorg/api/releases/tag/v1.0.0",
        "draft": False,
        "prerelease": False,
        "created_at": "2024-03-01T10:00:00Z",
        "published_at": "2024-03-01T10:05:00Z",
        "author": {
            "login": "octocat",
            "avatar_url": "https://avatars.example/octocat.png",
            "html_url": "https://github.com/octocat",
            "type": "User",
        },
    },
    "repository": {
        "name": "api",
        "full_name": "myorg/api",
        "html_url": "https://github.com/myorg/api",
    },
    "sender": {
        "login": "octocat",
        "avatar_url": "https://avatars.example/octocat.png",
        "html_url": "https://github.com/octocat",
        "type": "User",
    },
}


@pytest.fixture
def release_payload() -> dict[str, Any]:
    """A published release webhook body as a dict (safe to mutate)."""
    return copy.deepcopy(RELEASE_PAYLOAD)


@pytest.fixture
def release_event(release_payload: dict[str, Any]) -> ReleaseEvent:
    """The default payload parsed into a ReleaseEvent."""
    return ReleaseEvent.model_validate(release_payload)


@pytest.fixture
def recorded_sleep() -> tuple[Callable[[float], Awaitable[None]], list[float]]:
    """A sleep coroutine that records delays instead of waiting."""
    delays: list[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    return sleep, delays


@pytest.fixture(autouse=True)
def uncached_loggers() -> None:
    """Stop structlog from pinning whichever stdout was current on first use."""
    structlog.configure(cache_logger_on_first_use=False)
