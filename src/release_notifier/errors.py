"""Exception types raised by the release notifier.

Only failures that mean "the notification was not sent" are raised out of
the pipeline. CI lookup problems are absorbed by the resolver and never
show up here.
"""

from __future__ import annotations


class NotifierError(Exception):
    """Base class for all release notifier errors."""


class PayloadError(NotifierError):
    """The inbound webhook body could not be parsed into a release event."""


class DeliveryError(NotifierError):
    """Slack rejected the message or could not be reached.

    Attributes:
        status_code: HTTP status from Slack, if a response was received
        slack_error: The ``error`` field of a ``{"ok": false}`` response
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        slack_error: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.slack_error = slack_error


class ConfigError(NotifierError, ValueError):
    """Settings file or environment values are invalid."""
