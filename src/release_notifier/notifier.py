"""Release notification pipeline.

Ties the components together for one release event:
1. Gate the event (drafts, prereleases, uninteresting actions are skipped)
2. Resolve the CircleCI workflow for the release tag
3. Assemble the Slack message
4. Deliver it

Only delivery failures propagate; a failed CI lookup just means the
message goes out without a build link.

The same pipeline backs the HTTP webhook (main.py) and the
``release-notifier`` CLI below, which replays a saved payload.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Callable

from release_notifier.config import Settings, load_settings, normalize_color
from release_notifier.context.circleci import BuildResolver, BuildResolverProtocol
from release_notifier.errors import NotifierError
from release_notifier.events import parse_release_event, skip_reason
from release_notifier.formatting import build_message
from release_notifier.logging_config import get_logger, setup_logging
from release_notifier.schemas import (
    NotificationOutcome,
    ReleaseEvent,
    ResolutionResult,
    SlackMessage,
)
from release_notifier.slack import SlackClient, SlackClientProtocol

logger = get_logger(__name__)

SlackFactory = Callable[[str], SlackClientProtocol]


class ReleaseNotifier:
    """Announces releases in Slack.

    Stateless apart from its settings and collaborators, so one instance
    can serve every request.

    Usage:
        notifier = ReleaseNotifier(load_settings())
        outcome = await notifier.notify(event, slack_token, "#releases")
    """

    def __init__(
        self,
        settings: Settings | None = None,
        resolver: BuildResolverProtocol | None = None,
        slack_factory: SlackFactory | None = None,
    ) -> None:
        """Initialize the notifier.

        Args:
            settings: Notifier settings. Uses defaults if None.
            resolver: Build resolver. Defaults to CircleCI with the
                      configured token.
            slack_factory: Builds a Slack client from a bot token
        """
        self.settings = settings or Settings()
        self.resolver = resolver or BuildResolver(
            token=self.settings.circleci_token,
            settings=self.settings.resolver,
        )
        self._slack_factory = slack_factory or self._default_slack_client

    def _default_slack_client(self, token: str) -> SlackClientProtocol:
        return SlackClient(token, timeout=self.settings.slack_timeout)

    def pick_color(self, requested: str | None) -> str:
        """Use the requested color if it is valid hex, else the default."""
        if requested:
            color = normalize_color(requested)
            if color is not None:
                return color
        return self.settings.default_color

    async def prepare(
        self,
        event: ReleaseEvent,
        channel: str,
        color: str | None = None,
    ) -> SlackMessage:
        """Resolve the build link and assemble the message, without sending."""
        message, _ = await self._assemble(event, channel, color)
        return message

    async def _assemble(
        self,
        event: ReleaseEvent,
        channel: str,
        color: str | None,
    ) -> tuple[SlackMessage, ResolutionResult]:
        repo = event.repository
        resolution = await self.resolver.resolve(repo.owner, repo.short_name, event.release.tag_name)
        message = build_message(
            event,
            channel=channel,
            color=self.pick_color(color),
            resolution=resolution,
            stages=self.settings.message_stages,
            username=self.settings.bot_username,
        )
        return message, resolution

    async def notify(
        self,
        event: ReleaseEvent,
        slack_token: str,
        channel: str,
        color: str | None = None,
    ) -> NotificationOutcome:
        """Announce ``event`` in ``channel`` unless the gate rejects it.

        Returns:
            What happened, including the build link if one was found

        Raises:
            DeliveryError: If Slack could not be reached or rejected the message
        """
        repo_name = event.repository.full_name
        reason = skip_reason(event, self.settings.allowed_actions)
        if reason is not None:
            logger.info(
                "release_skipped",
                repo=repo_name,
                tag=event.release.tag_name,
                reason=reason,
            )
            return NotificationOutcome(notified=False, skipped_reason=reason)

        message, resolution = await self._assemble(event, channel, color)
        await self._slack_factory(slack_token).post_message(message)

        build_url = resolution.url if resolution.found else None
        logger.info(
            "release_announced",
            repo=repo_name,
            tag=event.release.tag_name,
            channel=channel,
            build_linked=build_url is not None,
        )
        return NotificationOutcome(notified=True, build_url=build_url)


# ---------------------------------------------------------------------------
# CLI Entry Point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """Replay a saved release webhook payload.

    Usage:
        release-notifier --event payload.json --token xoxb-... --channel C123
        cat payload.json | release-notifier --channel C123 --dry-run
    """
    parser = argparse.ArgumentParser(description="Announce a GitHub release in Slack")
    parser.add_argument(
        "--event", "-e",
        type=str,
        help="Path to a release webhook JSON body (reads stdin if omitted)",
    )
    parser.add_argument("--channel", "-c", required=True, help="Slack channel id or name")
    parser.add_argument("--token", "-t", default="", help="Slack bot token")
    parser.add_argument("--color", help="Attachment color as hex")
    parser.add_argument("--config", help="YAML settings file")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the Slack message instead of sending it",
    )
    args = parser.parse_args(argv)

    if not args.event and sys.stdin.isatty():
        parser.print_usage()
        print("Provide --event FILE or pipe JSON via stdin.")
        return 2

    try:
        settings = load_settings(args.config)
        setup_logging(settings.environment, settings.log_level)

        if args.event:
            with open(args.event) as f:
                body = f.read()
        else:
            body = sys.stdin.read()
        event = parse_release_event(body)

        notifier = ReleaseNotifier(settings)
        if args.dry_run:
            message = asyncio.run(notifier.prepare(event, args.channel, args.color))
            print(message.model_dump_json(indent=2, exclude_none=True))
            return 0

        if not args.token:
            parser.error("--token is required unless --dry-run is given")
        outcome = asyncio.run(notifier.notify(event, args.token, args.channel, args.color))
    except (NotifierError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print(outcome.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
