"""Release Notifier.

Receives GitHub release webhooks, looks up the CircleCI workflow that
built the release tag, and announces the release in a Slack channel.
"""

__version__ = "0.1.0"
