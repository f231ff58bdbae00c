"""CircleCI build resolution for release tags.

Given a repository and a release tag, find the CircleCI workflow that ran
for that tag and return a link to it.

GitHub fires the release webhook as soon as the release is published, which
can be before CircleCI has listed the build triggered by the tag push. The
resolver therefore polls the project's recent-builds listing a few times
with a linear backoff.

Failure policy:
- No token configured: lookup disabled, no request is made
- Tag not in the list yet: retry until the attempt bound
- Transport error, non-2xx status or malformed body: stop immediately

None of these raise. The caller gets a ResolutionResult whose ``found``
flag is all it needs; ``reason`` is there for the logs.

API docs: https://circleci.com/docs/api/v1/#recent-builds-for-a-single-project
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Protocol

import httpx
from pydantic import TypeAdapter, ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_incrementing,
)

from release_notifier.config import ResolverSettings
from release_notifier.logging_config import get_logger
from release_notifier.schemas import (
    BuildRecord,
    ResolutionReason,
    ResolutionRequest,
    ResolutionResult,
)

logger = get_logger(__name__)

Sleeper = Callable[[float], Awaitable[None]]

_BUILD_LIST = TypeAdapter(list[BuildRecord])


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class BuildResolverProtocol(Protocol):
    """Anything that can turn (account, repo, tag) into a build link."""

    async def resolve(self, account: str, repo: str, tag: str) -> ResolutionResult:
        ...


# ---------------------------------------------------------------------------
# CircleCI Implementation
# ---------------------------------------------------------------------------


def _still_pending(result: ResolutionResult) -> bool:
    return result.reason is ResolutionReason.NO_MATCH


def _last_result(retry_state: RetryCallState) -> ResolutionResult:
    return retry_state.outcome.result()


class BuildResolver:
    """Polls CircleCI's v1.1 project build listing for a tagged build.

    Usage:
        resolver = BuildResolver(token=settings.circleci_token)
        result = await resolver.resolve("myorg", "api", "v1.2.0")
        if result.found:
            print(result.url)
    """

    def __init__(
        self,
        token: str = "",
        settings: ResolverSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleeper | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            token: CircleCI API token. Empty disables the lookup.
            settings: Polling policy and endpoints. Uses defaults if None.
            transport: httpx transport override (tests use MockTransport)
            sleep: Coroutine used to wait between attempts
        """
        self._token = token
        self.settings = settings or ResolverSettings()
        self._transport = transport
        self._sleep = sleep or asyncio.sleep

    @property
    def enabled(self) -> bool:
        return bool(self._token)

    def project_url(self, account: str, repo: str) -> str:
        return f"{self.settings.api_base}/project/github/{account}/{repo}"

    def workflow_url(self, workflow_id: str) -> str:
        return f"{self.settings.app_base}/workflow-run/{workflow_id}"

    async def resolve(self, account: str, repo: str, tag: str) -> ResolutionResult:
        """Find the workflow link for ``tag`` in ``account/repo``.

        Args:
            account: GitHub organisation or user
            repo: Repository name
            tag: Release tag, matched exactly against each build's vcs_tag

        Returns:
            ResolutionResult with ``found`` and ``url`` set on success
        """
        if not self.enabled:
            result = ResolutionResult.not_found(ResolutionReason.DISABLED)
            self._log_outcome(account, repo, tag, result)
            return result

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.max_attempts),
            wait=wait_incrementing(
                start=self.settings.backoff_base,
                increment=self.settings.backoff_base,
            ),
            retry=retry_if_result(_still_pending),
            retry_error_callback=_last_result,
            sleep=self._sleep,
        )

        url = self.project_url(account, repo)
        attempts = 0

        async with httpx.AsyncClient(
            headers={"Accept": "application/json"},
            timeout=self.settings.request_timeout,
            transport=self._transport,
        ) as client:

            async def attempt() -> ResolutionResult:
                nonlocal attempts
                attempts += 1
                logger.debug(
                    "build_resolution_attempt",
                    repo=f"{account}/{repo}",
                    tag=tag,
                    attempt=attempts,
                )
                return await self._fetch_and_match(client, url, tag, attempts)

            result = await retrying(attempt)

        self._log_outcome(account, repo, tag, result)
        return result

    async def _fetch_and_match(
        self,
        client: httpx.AsyncClient,
        url: str,
        tag: str,
        attempt: int,
    ) -> ResolutionResult:
        """Run one listing request and scan it for the tag."""
        try:
            resp = await client.get(url, params={"circle-token": self._token})
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning(
                "circleci_request_failed",
                error_type=type(exc).__name__,
                attempt=attempt,
            )
            return ResolutionResult.not_found(ResolutionReason.TRANSPORT_ERROR, attempt)

        if not resp.is_success:
            logger.warning(
                "circleci_bad_status",
                status_code=resp.status_code,
                attempt=attempt,
            )
            return ResolutionResult.not_found(ResolutionReason.HTTP_ERROR, attempt)

        try:
            builds = _BUILD_LIST.validate_json(resp.content)
        except ValidationError as exc:
            logger.warning(
                "circleci_unparseable_response",
                error_count=exc.error_count(),
                attempt=attempt,
            )
            return ResolutionResult.not_found(ResolutionReason.PARSE_ERROR, attempt)

        for build in builds:
            if build.vcs_tag and build.vcs_tag == tag and build.workflow_id:
                return ResolutionResult.found_at(self.workflow_url(build.workflow_id), attempt)

        return ResolutionResult.not_found(ResolutionReason.NO_MATCH, attempt)

    @staticmethod
    def _log_outcome(account: str, repo: str, tag: str, result: ResolutionResult) -> None:
        logger.info(
            "build_resolution_complete",
            repo=f"{account}/{repo}",
            tag=tag,
            found=result.found,
            reason=result.reason.value,
            attempts=result.attempts,
        )


async def resolve_build(
    request: ResolutionRequest,
    settings: ResolverSettings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: Sleeper | None = None,
) -> ResolutionResult:
    """One-shot resolution for a ResolutionRequest.

    Equivalent to building a BuildResolver with ``request.auth_token`` and
    calling ``resolve``.
    """
    resolver = BuildResolver(
        token=request.auth_token,
        settings=settings,
        transport=transport,
        sleep=sleep,
    )
    return await resolver.resolve(request.account, request.repo, request.tag)


# ---------------------------------------------------------------------------
# Static Implementation
# ---------------------------------------------------------------------------


class StaticBuildResolver:
    """Resolver that returns a fixed result without touching CircleCI.

    Used for dry runs and tests.
    """

    def __init__(self, result: ResolutionResult | None = None) -> None:
        self._result = result or ResolutionResult.not_found(ResolutionReason.DISABLED)
        self.calls: list[tuple[str, str, str]] = []

    async def resolve(self, account: str, repo: str, tag: str) -> ResolutionResult:
        self.calls.append((account, repo, tag))
        return self._result
