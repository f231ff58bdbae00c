"""Pydantic models for everything that flows through the notifier.

Three groups of models live here:
- GitHub webhook payload (what arrives)
- CircleCI build listing and resolution results (what we look up)
- Slack message structure (what we send)

Only the fields the notifier actually reads are declared; GitHub and
CircleCI send far more, and pydantic ignores the rest.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# GitHub Webhook Payload
# ---------------------------------------------------------------------------


class GitHubUser(BaseModel):
    """A GitHub account (release author or event sender)."""

    login: str = Field(..., description="Account login")
    name: str | None = Field(None, description="Display name, often absent in webhooks")
    avatar_url: str = Field("", description="Avatar image URL")
    html_url: str = Field("", description="Profile page URL")
    type: str = Field("User", description="Account type: User, Bot or Organization")

    @property
    def is_bot(self) -> bool:
        """Whether this account is an automation identity."""
        return self.type == "Bot" or self.login.endswith("[bot]")

    @property
    def display_name(self) -> str:
        return self.name or self.login


class Repository(BaseModel):
    """The repository the release belongs to."""

    name: str = Field(..., description="Repository name without owner")
    full_name: str = Field(
        ..., pattern=r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$", description="Repository in 'owner/name' format"
    )
    html_url: str = Field("", description="Repository web URL")

    @property
    def owner(self) -> str:
        return self.full_name.split("/", 1)[0]

    @property
    def short_name(self) -> str:
        return self.full_name.split("/", 1)[1]


class Release(BaseModel):
    """Release metadata from the webhook body.

    Attributes:
        name: Release title (may be empty; GitHub then shows the tag)
        body: Release notes in markdown
        tag_name: The git tag the release points at
        html_url: Release page URL
        draft: Whether the release is an unpublished draft
        prerelease: Whether the release is marked as a prerelease
        author: Account that created the release
        created_at: When the release object was created
        published_at: When the release was published (None for drafts)
    """

    name: str | None = None
    body: str | None = None
    tag_name: str = Field(..., description="Git tag of the release")
    html_url: str = ""
    draft: bool = False
    prerelease: bool = False
    author: GitHubUser
    created_at: datetime | None = None
    published_at: datetime | None = None

    @property
    def title(self) -> str:
        return self.name or self.tag_name


class ReleaseEvent(BaseModel):
    """A GitHub ``release`` webhook event."""

    action: str = Field(..., description="published, created, edited, released, ...")
    release: Release
    repository: Repository
    sender: GitHubUser | None = None


# ---------------------------------------------------------------------------
# CircleCI Builds
# ---------------------------------------------------------------------------


class BuildRecord(BaseModel):
    """One entry from CircleCI's "recent builds for project" listing.

    CircleCI nests the workflow under ``workflows.workflow_id``; older
    payloads sometimes carry a list of workflow objects instead. Both are
    flattened into ``workflow_id`` here.
    """

    vcs_tag: str = Field("", description="Tag the build ran against, empty if none")
    workflow_id: str = Field("", description="Workflow the build job belonged to")

    @model_validator(mode="before")
    @classmethod
    def flatten_workflows(cls, data: Any) -> Any:
        """Pull the workflow id out of the nested ``workflows`` object."""
        if not isinstance(data, dict):
            return data

        data = dict(data)
        workflows = data.pop("workflows", None)
        if isinstance(workflows, list):
            workflows = workflows[0] if workflows else None
        if isinstance(workflows, dict) and "workflow_id" not in data:
            data["workflow_id"] = workflows.get("workflow_id") or ""

        if data.get("vcs_tag") is None:
            data["vcs_tag"] = ""
        if data.get("workflow_id") is None:
            data["workflow_id"] = ""
        return data


class ResolutionReason(StrEnum):
    """Why a build resolution ended the way it did.

    FOUND: A build with the requested tag was located
    DISABLED: No CircleCI token configured, lookup skipped
    NO_MATCH: Every attempt returned a list without the tag
    TRANSPORT_ERROR: Connection failure or timeout
    HTTP_ERROR: CircleCI answered with a non-2xx status
    PARSE_ERROR: The response body was not a build list
    """

    FOUND = "FOUND"
    DISABLED = "DISABLED"
    NO_MATCH = "NO_MATCH"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    HTTP_ERROR = "HTTP_ERROR"
    PARSE_ERROR = "PARSE_ERROR"


class ResolutionRequest(BaseModel):
    """Input to one build resolution. Immutable for its duration."""

    model_config = ConfigDict(frozen=True)

    auth_token: str = ""
    account: str
    repo: str
    tag: str


class ResolutionResult(BaseModel):
    """Outcome of a build resolution.

    Callers only need ``found`` and ``url``. ``reason`` and ``attempts``
    are diagnostics for logging.
    """

    model_config = ConfigDict(frozen=True)

    found: bool
    url: str | None = None
    reason: ResolutionReason
    attempts: int = 0

    @classmethod
    def found_at(cls, url: str, attempts: int = 1) -> ResolutionResult:
        return cls(found=True, url=url, reason=ResolutionReason.FOUND, attempts=attempts)

    @classmethod
    def not_found(cls, reason: ResolutionReason, attempts: int = 0) -> ResolutionResult:
        return cls(found=False, reason=reason, attempts=attempts)


# ---------------------------------------------------------------------------
# Slack Message
# ---------------------------------------------------------------------------


class AttachmentField(BaseModel):
    """A title/value pair shown inside an attachment."""

    title: str
    value: str
    short: bool = False


class Attachment(BaseModel):
    """A Slack message attachment (legacy secondary content block)."""

    fallback: str | None = None
    color: str | None = None
    title: str | None = None
    title_link: str | None = None
    author_name: str | None = None
    author_icon: str | None = None
    author_link: str | None = None
    text: str | None = None
    fields: list[AttachmentField] = Field(default_factory=list)
    footer: str | None = None
    ts: int | None = Field(None, description="Unix timestamp shown in the footer")


class SlackMessage(BaseModel):
    """Arguments for ``chat.postMessage``."""

    channel: str = Field(..., min_length=1)
    text: str
    username: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        """Serialize for the Slack Web API, dropping unset attachment keys."""
        return self.model_dump(exclude_none=True)


# ---------------------------------------------------------------------------
# Pipeline Outcome
# ---------------------------------------------------------------------------


class NotificationOutcome(BaseModel):
    """What the notifier did with one release event."""

    notified: bool
    skipped_reason: str | None = None
    build_url: str | None = None
