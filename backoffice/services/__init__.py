"""Services composing the approval engine with infrastructure."""

from backoffice.services.notifications import (
    LoggingNotifier,
    NotificationDeliveryError,
    WebhookNotifier,
    build_notifier,
    close_notifier,
    get_notifier,
)
from backoffice.services.workflows import build_workflow_engine

__all__ = [
    "LoggingNotifier",
    "NotificationDeliveryError",
    "WebhookNotifier",
    "build_notifier",
    "build_workflow_engine",
    "close_notifier",
    "get_notifier",
]
