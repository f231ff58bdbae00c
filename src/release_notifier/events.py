"""Inbound GitHub webhook handling.

Decides whether a delivery is a release worth announcing:
- The ``X-GitHub-Event`` header must be ``release``
- The body must parse into a ReleaseEvent
- The release must not be a draft or a prerelease
- The action must be one of the allowed actions (``published`` by default)
"""

from __future__ import annotations

from collections.abc import Collection, Mapping

from pydantic import ValidationError

from release_notifier.errors import PayloadError
from release_notifier.schemas import ReleaseEvent

EVENT_HEADER = "X-GitHub-Event"
RELEASE_EVENT = "release"


def event_type(headers: Mapping[str, str]) -> str:
    """Return the GitHub event type from request headers.

    Header names are case-insensitive; the value is returned as sent.
    """
    for key, value in headers.items():
        if key.lower() == EVENT_HEADER.lower():
            return value
    return ""


def is_release_event(headers: Mapping[str, str]) -> bool:
    return event_type(headers) == RELEASE_EVENT


def parse_release_event(body: bytes | str) -> ReleaseEvent:
    """Parse a webhook body into a ReleaseEvent.

    Args:
        body: Raw JSON body of the delivery

    Returns:
        The parsed event

    Raises:
        PayloadError: If the body is not JSON or lacks required release fields
    """
    try:
        return ReleaseEvent.model_validate_json(body)
    except ValidationError as exc:
        raise PayloadError(f"Invalid release payload: {exc.error_count()} error(s)") from exc


def skip_reason(
    event: ReleaseEvent,
    allowed_actions: Collection[str] = ("published",),
) -> str | None:
    """Explain why ``event`` should not be announced, or None if it should.

    An empty ``allowed_actions`` turns action filtering off.
    """
    if event.release.draft:
        return "draft"
    if event.release.prerelease:
        return "prerelease"
    if allowed_actions and event.action not in allowed_actions:
        return f"action:{event.action}"
    return None
