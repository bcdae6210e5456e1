"""Append-only approval history.

History is the audit trail of what happened when. It is never read back to
decide workflow state; instance and request statuses are the source of truth.
"""

import logging
from typing import List, Optional

from backoffice.core.clock import Clock, SystemClock

from .states import HistoryAction
from .store import InstanceStore
from .types import ApprovalHistoryEntry

logger = logging.getLogger(__name__)


class HistoryLogger:
    """Writes exactly one history entry per engine-driven transition."""

    def __init__(self, store: InstanceStore, clock: Optional[Clock] = None):
        self.store = store
        self.clock = clock or SystemClock()

    def record(
        self,
        instance_id: int,
        action: HistoryAction,
        actor_email: str,
        *,
        step_id: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> ApprovalHistoryEntry:
        entry = self.store.append_history(
            ApprovalHistoryEntry(
                workflow_instance_id=instance_id,
                action=HistoryAction(action).value,
                actor_email=actor_email,
                step_id=step_id,
                comment=comment,
                created_at=self.clock.now(),
            )
        )
        logger.debug("History: instance %s %s by %s", instance_id, entry.action, actor_email)
        return entry

    def timeline(self, instance_id: int) -> List[ApprovalHistoryEntry]:
        """Entries for an instance, newest first."""
        return self.store.list_history(instance_id)
