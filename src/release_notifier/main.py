"""FastAPI application receiving GitHub release webhooks.

Routes:
- POST /webhook/{token}/{channel} - GitHub webhook target; ``token`` is the
  Slack bot token, ``channel`` the destination channel, ``?color=`` an
  optional attachment color
- GET /health - Health check for load balancers and monitoring

Response contract:
- 200 {"done": true} for announced releases, for non-release events and
  for releases the gate skips (drafts, prereleases, other actions)
- 500 {"error": "Unable to handle request"} when the body cannot be
  parsed or Slack delivery fails

To run locally:
    uvicorn release_notifier.main:app --reload --port 8000
"""

from __future__ import annotations

import os
import re
import time

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from release_notifier import __version__
from release_notifier.config import Settings, load_settings
from release_notifier.errors import DeliveryError, NotifierError, PayloadError
from release_notifier.events import event_type, is_release_event, parse_release_event
from release_notifier.logging_config import REDACTED, get_logger, setup_logging
from release_notifier.notifier import ReleaseNotifier

logger = get_logger(__name__)

DONE = {"done": True}
FAILURE_BODY = {"error": "Unable to handle request"}

# The Slack token is a path segment; keep it out of the logs.
_TOKEN_SEGMENT = re.compile(r"^/webhook/[^/]+/")


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        start = time.time()
        response = await call_next(request)
        duration = time.time() - start
        logger.info(
            "http_request",
            method=request.method,
            path=_TOKEN_SEGMENT.sub(f"/webhook/{REDACTED}/", request.url.path),
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 1),
        )
        return response


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint for load balancers and monitoring."""
    return {"status": "healthy"}


@router.post("/webhook/{token}/{channel}")
async def release_webhook(
    token: str,
    channel: str,
    request: Request,
    color: str | None = None,
) -> dict[str, bool]:
    """Handle one GitHub webhook delivery.

    The body is read raw rather than declared as a model so that a
    malformed payload maps to the 500 response GitHub shows as a failed
    delivery, not FastAPI's 422.
    """
    if not is_release_event(request.headers):
        logger.info("webhook_ignored", event_type=event_type(request.headers) or None)
        return DONE

    event = parse_release_event(await request.body())
    logger.info(
        "webhook_received",
        repo=event.repository.full_name,
        tag=event.release.tag_name,
        action=event.action,
        channel=channel,
    )

    notifier: ReleaseNotifier = request.app.state.notifier
    await notifier.notify(event, token, channel, color)
    return DONE


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


async def notifier_error_handler(request: Request, exc: NotifierError) -> JSONResponse:
    """Map payload and delivery failures to a 500.

    GitHub records the failed delivery and lets the sender redeliver it.
    """
    if isinstance(exc, PayloadError):
        logger.warning("webhook_payload_invalid", error=str(exc))
    elif isinstance(exc, DeliveryError):
        logger.error(
            "webhook_delivery_failed",
            error=str(exc),
            slack_error=exc.slack_error,
            exc_info=True,
        )
    else:
        logger.error("webhook_failed", error=str(exc), exc_info=True)
    return JSONResponse(status_code=500, content=FAILURE_BODY)


# ---------------------------------------------------------------------------
# FastAPI App
# ---------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    notifier: ReleaseNotifier | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Settings to use. Loaded from YAML/env if None.
        notifier: Pre-built notifier (tests inject one with fakes)
    """
    settings = settings or load_settings()
    setup_logging(settings.environment, settings.log_level)

    app = FastAPI(
        title="Release Notifier",
        description="Announces GitHub releases in Slack with their CircleCI build",
        version=__version__,
    )
    app.state.settings = settings
    app.state.notifier = notifier or ReleaseNotifier(settings)

    app.add_middleware(LoggingMiddleware)
    app.add_exception_handler(NotifierError, notifier_error_handler)
    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    """Serve the app with uvicorn (``release-notifier-server``)."""
    uvicorn.run(
        "release_notifier.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
    )
