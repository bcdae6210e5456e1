"""Celery tasks for approval workflows.

Provides periodic processing for:
- Auto-approval of requests past their step's auto_approve_after_hours
- Escalating reminders for requests still pending
"""

from dataclasses import asdict
from typing import Any, Dict
import logging

from celery import Celery, shared_task
from sqlalchemy.exc import OperationalError

from backoffice.core.approval.sweeps import AutoApprovalSweeper, ReminderSweeper
from backoffice.core.config import get_settings
from backoffice.db.session import SessionLocal
from backoffice.services.notifications import build_notifier
from backoffice.services.workflows import build_workflow_engine

logger = logging.getLogger(__name__)
settings = get_settings()

# Initialize Celery
celery_app = Celery(
    'backoffice',
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_routes={
        'backoffice.workers.approval_tasks.auto_approve_overdue_requests': {'queue': 'approvals'},
        'backoffice.workers.approval_tasks.send_approval_reminders': {'queue': 'approvals'},
    },
    task_default_queue='default',
    beat_schedule={
        'auto-approve-overdue-requests': {
            'task': 'backoffice.workers.approval_tasks.auto_approve_overdue_requests',
            'schedule': settings.auto_approve_sweep_minutes * 60.0,
        },
        'send-approval-reminders': {
            'task': 'backoffice.workers.approval_tasks.send_approval_reminders',
            'schedule': settings.reminder_sweep_minutes * 60.0,
        },
    },
)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def auto_approve_overdue_requests(self) -> Dict[str, Any]:
    """
    Periodic task approving requests whose auto-approval window elapsed.
    
    Returns:
        Sweep result dictionary
    """
    db = SessionLocal()
    notifier = build_notifier(settings)
    try:
        engine = build_workflow_engine(db, settings, observers=[notifier])
        result = AutoApprovalSweeper(engine, settings.system_actor_email).run()
        db.commit()
        engine.flush_events()
        return asdict(result)
        
    except OperationalError as e:
        db.rollback()
        logger.exception("Auto-approval sweep failed")
        raise self.retry(exc=e)
        
    finally:
        db.close()
        notifier.close()


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def send_approval_reminders(self) -> Dict[str, Any]:
    """
    Periodic task sending reminders for pending approval requests.
    
    Returns:
        Sweep result dictionary
    """
    db = SessionLocal()
    notifier = build_notifier(settings)
    try:
        engine = build_workflow_engine(db, settings, observers=[notifier])
        result = ReminderSweeper(engine, settings.reminder_schedule).run()
        db.commit()
        engine.flush_events()
        return asdict(result)
        
    except OperationalError as e:
        db.rollback()
        logger.exception("Reminder sweep failed")
        raise self.retry(exc=e)
        
    finally:
        db.close()
        notifier.close()
