"""Celery workers for the back office."""

from backoffice.workers.approval_tasks import (
    celery_app,
    auto_approve_overdue_requests,
    send_approval_reminders,
)

__all__ = [
    "celery_app",
    "auto_approve_overdue_requests",
    "send_approval_reminders",
]
