"""Slack message assembly for release announcements.

The message is built in two steps:
1. A base attachment straight from the release (title, author, notes,
   timestamp, tag link)
2. A pipeline of optional stages that decorate it

Stages are plain functions ``(Attachment, MessageContext) -> Attachment``
registered by name in STAGES, so each can be enabled, disabled and tested
on its own. Settings.message_stages picks which ones run, in order.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from release_notifier.schemas import (
    Attachment,
    AttachmentField,
    GitHubUser,
    ReleaseEvent,
    ResolutionResult,
    SlackMessage,
)

HEADER_TEMPLATE = ":ship: New release for [*<{repo_url}|{repo_name}>*] `{tag}`"

# `#123` not preceded by a word char or by characters that mean it is
# already part of a link, entity or URL fragment.
_REFERENCE = re.compile(r"(?<![\w&/|#])#(\d+)\b")


@dataclass(frozen=True)
class MessageContext:
    """Everything a stage may read besides the attachment itself."""

    event: ReleaseEvent
    build_url: str | None = None

    @property
    def repo_url(self) -> str:
        return self.event.repository.html_url or (
            f"https://github.com/{self.event.repository.full_name}"
        )


Stage = Callable[[Attachment, MessageContext], Attachment]


def _profile_url(user: GitHubUser) -> str:
    return user.html_url or f"https://github.com/{user.login}"


def _release_timestamp(event: ReleaseEvent) -> int | None:
    moment = event.release.published_at or event.release.created_at
    return int(moment.timestamp()) if moment else None


# ---------------------------------------------------------------------------
# Base Message
# ---------------------------------------------------------------------------


def header_text(event: ReleaseEvent) -> str:
    """The plain message text shown above the attachment."""
    return HEADER_TEMPLATE.format(
        repo_url=MessageContext(event=event).repo_url,
        repo_name=event.repository.name,
        tag=event.release.tag_name,
    )


def base_attachment(event: ReleaseEvent, color: str) -> Attachment:
    """Build the undecorated attachment for a release."""
    release = event.release
    return Attachment(
        fallback=f"New release {release.tag_name} of {event.repository.full_name}",
        color=color,
        title=release.title,
        title_link=release.html_url or None,
        author_name=release.author.display_name,
        author_icon=release.author.avatar_url or None,
        author_link=_profile_url(release.author),
        text=release.body or "",
        fields=[AttachmentField(title="Tag", value=release.html_url or release.tag_name)],
        footer=event.repository.full_name,
        ts=_release_timestamp(event),
    )


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


def author_fallback(attachment: Attachment, context: MessageContext) -> Attachment:
    """Credit the human sender when the release was authored by a bot."""
    author = context.event.release.author
    sender = context.event.sender
    if not author.is_bot or sender is None or sender.is_bot:
        return attachment
    return attachment.model_copy(
        update={
            "author_name": sender.display_name,
            "author_icon": sender.avatar_url or None,
            "author_link": _profile_url(sender),
        }
    )


def link_references(attachment: Attachment, context: MessageContext) -> Attachment:
    """Turn ``#123`` in the release notes into links to the issue or PR."""
    if not attachment.text:
        return attachment
    issues_url = f"{context.repo_url}/issues"
    text = _REFERENCE.sub(lambda m: f"<{issues_url}/{m.group(1)}|#{m.group(1)}>", attachment.text)
    return attachment.model_copy(update={"text": text})


def build_link(attachment: Attachment, context: MessageContext) -> Attachment:
    """Append the CircleCI workflow link, only when one was resolved."""
    if not context.build_url:
        return attachment
    fields = [*attachment.fields, AttachmentField(title="CircleCI", value=context.build_url)]
    return attachment.model_copy(update={"fields": fields})


STAGES: dict[str, Stage] = {
    "author_fallback": author_fallback,
    "link_references": link_references,
    "build_link": build_link,
}

DEFAULT_STAGES = ("author_fallback", "link_references", "build_link")


def apply_stages(
    attachment: Attachment,
    context: MessageContext,
    stages: Sequence[str] = DEFAULT_STAGES,
) -> Attachment:
    """Run the named stages over ``attachment`` in order.

    Raises:
        KeyError: If a stage name is not registered
    """
    for name in stages:
        attachment = STAGES[name](attachment, context)
    return attachment


# ---------------------------------------------------------------------------
# Entry Point
# ---------------------------------------------------------------------------


def build_message(
    event: ReleaseEvent,
    channel: str,
    color: str,
    resolution: ResolutionResult | None = None,
    stages: Sequence[str] = DEFAULT_STAGES,
    username: str | None = "Release Bot",
) -> SlackMessage:
    """Assemble the full Slack message for a release.

    Args:
        event: The release event to announce
        channel: Slack channel id or name
        color: Attachment color as ``#rrggbb``
        resolution: CircleCI lookup result; only used when ``found``
        stages: Names of decoration stages to run
        username: Display name for the bot

    Returns:
        A SlackMessage ready for delivery
    """
    build_url = resolution.url if resolution is not None and resolution.found else None
    context = MessageContext(event=event, build_url=build_url)
    attachment = apply_stages(base_attachment(event, color), context, stages)
    return SlackMessage(
        channel=channel,
        text=header_text(event),
        username=username,
        attachments=[attachment],
    )
