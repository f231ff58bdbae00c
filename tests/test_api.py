"""Tests for the webhook HTTP surface.

The app is built with create_app() around a notifier whose resolver and
Slack client are fakes, then driven through FastAPI's TestClient.
"""

from __future__ import annotations

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from release_notifier import main as main_module
from release_notifier.config import Settings
from release_notifier.context.circleci import BuildResolver, StaticBuildResolver
from release_notifier.errors import DeliveryError
from release_notifier.main import create_app
from release_notifier.notifier import ReleaseNotifier
from release_notifier.schemas import ResolutionResult
from release_notifier.slack import MockSlackClient

RELEASE_HEADERS = {"X-GitHub-Event": "release", "Content-Type": "application/json"}
WEBHOOK = "/webhook/xoxb-secret/C123"


@pytest.fixture
def slack() -> MockSlackClient:
    return MockSlackClient()


@pytest.fixture
def resolver() -> StaticBuildResolver:
    return StaticBuildResolver(ResolutionResult.found_at("https://circleci.com/workflow-run/w9"))


@pytest.fixture
def client(slack: MockSlackClient, resolver: StaticBuildResolver) -> TestClient:
    settings = Settings()
    notifier = ReleaseNotifier(settings, resolver=resolver, slack_factory=lambda token: slack)
    return TestClient(create_app(settings, notifier))


def test_health_check(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


class TestWebhook:
    def test_release_is_announced(
        self, client: TestClient, slack: MockSlackClient, release_payload: dict
    ) -> None:
        response = client.post(WEBHOOK, content=json.dumps(release_payload), headers=RELEASE_HEADERS)

        assert response.status_code == 200
        assert response.json() == {"done": True}
        assert len(slack.messages) == 1
        message = slack.messages[0]
        assert message.channel == "C123"
        assert message.attachments[0].color == "#4286f4"
        assert message.attachments[0].fields[-1].value.endswith("/w9")

    def test_color_query_parameter(
        self, client: TestClient, slack: MockSlackClient, release_payload: dict
    ) -> None:
        response = client.post(
            WEBHOOK,
            params={"color": "#36a64f"},
            content=json.dumps(release_payload),
            headers=RELEASE_HEADERS,
        )

        assert response.status_code == 200
        assert slack.messages[0].attachments[0].color == "#36a64f"

    def test_non_release_event_is_ignored(
        self, client: TestClient, slack: MockSlackClient, resolver: StaticBuildResolver
    ) -> None:
        response = client.post(
            WEBHOOK,
            content=json.dumps({"zen": "Keep it logically awesome."}),
            headers={"X-GitHub-Event": "ping"},
        )

        assert response.status_code == 200
        assert response.json() == {"done": True}
        assert slack.messages == []
        assert resolver.calls == []

    def test_missing_event_header_is_ignored(self, client: TestClient, slack: MockSlackClient) -> None:
        response = client.post(WEBHOOK, content="{}")

        assert response.status_code == 200
        assert slack.messages == []

    def test_draft_is_skipped(
        self, client: TestClient, slack: MockSlackClient, release_payload: dict
    ) -> None:
        release_payload["release"]["draft"] = True

        response = client.post(WEBHOOK, content=json.dumps(release_payload), headers=RELEASE_HEADERS)

        assert response.status_code == 200
        assert response.json() == {"done": True}
        assert slack.messages == []

    def test_prerelease_is_skipped(
        self, client: TestClient, slack: MockSlackClient, release_payload: dict
    ) -> None:
        release_payload["release"]["prerelease"] = True

        response = client.post(WEBHOOK, content=json.dumps(release_payload), headers=RELEASE_HEADERS)

        assert response.status_code == 200
        assert slack.messages == []

    def test_malformed_body_is_500(self, client: TestClient, slack: MockSlackClient) -> None:
        response = client.post(WEBHOOK, content="{not json", headers=RELEASE_HEADERS)

        assert response.status_code == 500
        assert response.json() == {"error": "Unable to handle request"}
        assert slack.messages == []

    def test_delivery_failure_is_500(self, resolver: StaticBuildResolver, release_payload: dict) -> None:
        failing = MockSlackClient(error=DeliveryError("rejected", slack_error="not_in_channel"))
        settings = Settings()
        notifier = ReleaseNotifier(settings, resolver=resolver, slack_factory=lambda token: failing)
        client = TestClient(create_app(settings, notifier))

        response = client.post(WEBHOOK, content=json.dumps(release_payload), headers=RELEASE_HEADERS)

        assert response.status_code == 500
        assert response.json() == {"error": "Unable to handle request"}

    def test_slack_token_comes_from_path(self, resolver: StaticBuildResolver, release_payload: dict) -> None:
        tokens: list[str] = []
        slack = MockSlackClient()

        def factory(token: str) -> MockSlackClient:
            tokens.append(token)
            return slack

        settings = Settings()
        client = TestClient(create_app(settings, ReleaseNotifier(settings, resolver=resolver, slack_factory=factory)))

        client.post(WEBHOOK, content=json.dumps(release_payload), headers=RELEASE_HEADERS)

        assert tokens == ["xoxb-secret"]

    @pytest.mark.parametrize("value", ["Release", "RELEASE"])
    def test_event_header_value_is_exact(
        self, client: TestClient, slack: MockSlackClient, release_payload: dict, value: str
    ) -> None:
        response = client.post(
            WEBHOOK,
            content=json.dumps(release_payload),
            headers={"X-GitHub-Event": value, "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert slack.messages == []

    def test_circleci_url_failure_still_announces(self, release_payload: dict) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.InvalidURL("Invalid URL component 'path'")

        async def no_wait(seconds: float) -> None:
            return None

        slack = MockSlackClient()
        settings = Settings()
        resolver = BuildResolver(token="abc", transport=httpx.MockTransport(refuse), sleep=no_wait)
        notifier = ReleaseNotifier(settings, resolver=resolver, slack_factory=lambda token: slack)
        client = TestClient(create_app(settings, notifier))

        response = client.post(WEBHOOK, content=json.dumps(release_payload), headers=RELEASE_HEADERS)

        assert response.status_code == 200
        assert response.json() == {"done": True}
        assert len(slack.messages) == 1
        titles = [field.title for field in slack.messages[0].attachments[0].fields]
        assert "CircleCI" not in titles


def test_run_serves_app_with_uvicorn(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[tuple, dict]] = []
    monkeypatch.setattr(main_module.uvicorn, "run", lambda *args, **kwargs: calls.append((args, kwargs)))
    monkeypatch.setenv("PORT", "9000")

    main_module.run()

    args, kwargs = calls[0]
    assert args == ("release_notifier.main:app",)
    assert kwargs["port"] == 9000
