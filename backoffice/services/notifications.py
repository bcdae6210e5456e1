"""Notification gateway for approval workflow events.

Handles:
- Webhook delivery of pending, reminder and completion events
- Retry logic for failed deliveries
- A logging fallback when no webhook is configured
"""

import logging
import time
from functools import lru_cache
from typing import Any, Dict, Optional

import httpx
from jinja2 import Template

from backoffice.core.approval.events import WorkflowEvent, WorkflowEventType
from backoffice.core.config import get_settings

logger = logging.getLogger(__name__)


# One-line summaries, rendered into the webhook payload's "text" field
SUMMARY_TEMPLATES = {
    WorkflowEventType.APPROVAL_PENDING: Template(
        "Approval needed from {{ approver }} for {{ entity_type }} #{{ entity_id }}"
    ),
    WorkflowEventType.APPROVAL_REMINDER: Template(
        "Reminder {{ reminder_count }}: {{ approver }} has not yet decided on "
        "{{ entity_type }} #{{ entity_id }}"
    ),
    WorkflowEventType.WORKFLOW_COMPLETED: Template(
        "Approval workflow for {{ entity_type }} #{{ entity_id }} is {{ status }}"
    ),
}


class NotificationDeliveryError(Exception):
    """Raised when a webhook could not be delivered after all retries."""


def build_payload(event: WorkflowEvent) -> Dict[str, Any]:
    """Build the JSON payload sent for an event."""
    instance = event.instance
    request = event.request
    context = {
        "entity_type": instance.entity_type,
        "entity_id": instance.entity_id,
        "status": instance.status,
        "approver": request.approver_email if request else None,
        # The reminder being sent, counting from one
        "reminder_count": (request.reminder_count + 1) if request else 0,
    }
    payload = {
        "event": event.event_type.value,
        "timestamp": event.occurred_at.isoformat(),
        "text": SUMMARY_TEMPLATES[event.event_type].render(**context),
        "workflow": {
            "id": instance.id,
            "definition_id": instance.workflow_definition_id,
            "entity_type": instance.entity_type,
            "entity_id": instance.entity_id,
            "status": instance.status,
            "current_step": instance.current_step,
        },
    }
    if request is not None:
        payload["request"] = {
            "id": request.id,
            "step_id": request.step_id,
            "approver_email": request.approver_email,
            "status": request.status,
        }
    return payload


class LoggingNotifier:
    """Writes workflow events to the log. Used when no webhook is configured."""

    def notify(self, event: WorkflowEvent) -> None:
        payload = build_payload(event)
        logger.info("Workflow event %s: %s", payload["event"], payload["text"])

    def close(self) -> None:
        pass


class WebhookNotifier:
    """
    Posts workflow events to a webhook endpoint.
    
    Failed deliveries are retried with a linear backoff. When every attempt
    fails a NotificationDeliveryError is raised; the engine logs it without
    undoing the transition that produced the event.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initialize the notifier.
        
        Args:
            url: Webhook endpoint
            timeout: Per-request timeout in seconds
            max_retries: Attempts after the first one
            backoff_seconds: Delay multiplier between attempts
            client: HTTP client to use; one is created otherwise
        """
        self.url = url
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.client = client or httpx.Client(timeout=timeout)

    def notify(self, event: WorkflowEvent) -> None:
        payload = build_payload(event)
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            if attempt:
                time.sleep(self.backoff_seconds * attempt)
            try:
                response = self.client.post(self.url, json=payload)
                response.raise_for_status()
                logger.debug("Delivered %s for workflow %s", payload["event"], event.instance.id)
                return
            except httpx.HTTPError as e:
                last_error = e
                logger.warning(
                    "Webhook delivery attempt %s/%s to %s failed: %s",
                    attempt + 1, self.max_retries + 1, self.url, e,
                )

        raise NotificationDeliveryError(
            f"Failed to deliver {payload['event']} for workflow {event.instance.id}: {last_error}"
        )

    def close(self) -> None:
        self.client.close()


def build_notifier(settings):
    """Return the notifier configured by ``settings``."""
    if settings.webhook_url:
        return WebhookNotifier(
            settings.webhook_url,
            timeout=settings.webhook_timeout,
            max_retries=settings.webhook_max_retries,
        )
    return LoggingNotifier()


@lru_cache
def get_notifier():
    """Process-wide notifier; every request shares its HTTP connection pool."""
    return build_notifier(get_settings())


def close_notifier() -> None:
    """Close the process-wide notifier, e.g. on application shutdown."""
    if get_notifier.cache_info().currsize:
        get_notifier().close()
        get_notifier.cache_clear()
