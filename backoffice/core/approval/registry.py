"""Workflow definition registry.

Administrators create definitions and their steps ahead of time; the engine
only reads them. Callers supply step orders: the registry rejects duplicates
but does not renumber or fill gaps.
"""

import logging
from typing import List, Optional

from backoffice.core.clock import Clock, SystemClock

from .errors import DefinitionNotFound, InvalidStepConfiguration
from .states import parse_approver_type, parse_entity_type, parse_workflow_type
from .store import DefinitionStore
from .types import DefinitionDetail, WorkflowDefinition, WorkflowStep

logger = logging.getLogger(__name__)

# The workflow type stays fixed: running instances are evaluated against it
_UPDATABLE_FIELDS = {"name", "description", "is_active", "is_default"}


class DefinitionRegistry:
    """Reads and writes workflow definitions through a DefinitionStore."""

    def __init__(self, store: DefinitionStore, clock: Optional[Clock] = None):
        self.store = store
        self.clock = clock or SystemClock()

    def get(self, definition_id: int) -> WorkflowDefinition:
        definition = self.store.get_definition(definition_id)
        if definition is None:
            raise DefinitionNotFound(definition_id=definition_id)
        return definition

    def get_default(self, entity_type) -> WorkflowDefinition:
        """Return the active default definition for an entity type.

        Raises:
            DefinitionNotFound: If the entity type has no active default
        """
        entity_type = parse_entity_type(entity_type)
        definition = self.store.get_default_definition(entity_type.value)
        if definition is None:
            raise DefinitionNotFound(entity_type=entity_type.value)
        return definition

    def list(self, entity_type=None) -> List[WorkflowDefinition]:
        if entity_type is not None:
            entity_type = parse_entity_type(entity_type).value
        return self.store.list_definitions(entity_type)

    def get_with_steps(self, definition_id: int) -> DefinitionDetail:
        definition = self.get(definition_id)
        return DefinitionDetail(definition=definition, steps=self.store.list_steps(definition_id))

    def steps(self, definition_id: int) -> List[WorkflowStep]:
        return self.store.list_steps(definition_id)

    def create(
        self,
        name: str,
        entity_type,
        workflow_type,
        *,
        description: Optional[str] = None,
        is_default: bool = False,
        is_active: bool = True,
    ) -> WorkflowDefinition:
        """
        Create a workflow definition.
        
        Setting ``is_default`` clears the default flag of every other
        definition for the same entity type as part of the same write.
        
        Raises:
            InvalidEntityType: If entity_type is unknown
            InvalidWorkflowType: If workflow_type is unknown
        """
        now = self.clock.now()
        definition = self.store.add_definition(
            WorkflowDefinition(
                name=name,
                description=description,
                entity_type=parse_entity_type(entity_type).value,
                workflow_type=parse_workflow_type(workflow_type).value,
                is_active=is_active,
                is_default=is_default,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info(
            "Created %s workflow definition %s (%r) for %s%s",
            definition.workflow_type, definition.id, definition.name,
            definition.entity_type, " [default]" if definition.is_default else "",
        )
        return definition

    def update(self, definition_id: int, **changes) -> WorkflowDefinition:
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        changes = {key: value for key, value in changes.items() if value is not None}
        changes["updated_at"] = self.clock.now()
        
        definition = self.store.update_definition(definition_id, **changes)
        if definition is None:
            raise DefinitionNotFound(definition_id=definition_id)
        return definition

    def add_step(
        self,
        definition_id: int,
        step_order: int,
        approver_type,
        approver_value: str,
        *,
        is_optional: bool = False,
        auto_approve_after_hours: Optional[int] = None,
    ) -> WorkflowStep:
        """
        Append a step to a definition.
        
        Raises:
            DefinitionNotFound: If the definition does not exist
            InvalidStepConfiguration: On a non-positive or duplicate step order,
                an unknown approver type, an empty approver value or a
                negative auto-approve delay
        """
        self.get(definition_id)
        if step_order < 1:
            raise InvalidStepConfiguration(f"Step order must be 1 or greater, got {step_order}")
        if not approver_value:
            raise InvalidStepConfiguration("Approver value is required")
        if auto_approve_after_hours is not None and auto_approve_after_hours < 0:
            raise InvalidStepConfiguration("auto_approve_after_hours cannot be negative")
        
        return self.store.add_step(
            WorkflowStep(
                workflow_definition_id=definition_id,
                step_order=step_order,
                approver_type=parse_approver_type(approver_type).value,
                approver_value=approver_value,
                is_optional=is_optional,
                auto_approve_after_hours=auto_approve_after_hours or None,
                created_at=self.clock.now(),
            )
        )
