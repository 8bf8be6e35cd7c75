"""Status notifications for pipeline runs.

Example Usage
-------------
>>> from dominion_deploy.notify import build_notifier
>>> notifier = build_notifier(os.environ.get("SLACK_WEBHOOK_URL"))
>>> notifier.send("Deployment started in `prod`.")
"""

from .notifier import (
    Notifier,
    NullNotifier,
    RecordingNotifier,
    SlackNotifier,
    build_notifier,
)

__all__ = [
    "Notifier",
    "NullNotifier",
    "RecordingNotifier",
    "SlackNotifier",
    "build_notifier",
]
