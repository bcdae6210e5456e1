"""Error taxonomy for the approval workflow engine.

All errors are local and synchronous. The engine never retries; callers
decide whether a failed operation is worth repeating.
"""

from typing import Optional


class WorkflowError(Exception):
    """Base class for approval workflow failures."""
    
    code = "workflow_error"
    
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DefinitionNotFound(WorkflowError):
    """No matching (or default) workflow definition exists."""
    
    code = "definition_not_found"
    
    def __init__(self, entity_type: Optional[str] = None, definition_id: Optional[int] = None):
        if definition_id is not None:
            message = f"Workflow definition {definition_id} not found"
        else:
            message = f"No workflow definition found for entity type: {entity_type}"
        super().__init__(message)
        self.entity_type = entity_type
        self.definition_id = definition_id


class NoStepsConfigured(WorkflowError):
    """The definition has no steps, so an instance could never complete."""
    
    code = "no_steps_configured"
    
    def __init__(self, definition_id: int):
        super().__init__(f"Workflow definition {definition_id} has no steps configured")
        self.definition_id = definition_id


class RequestNotFound(WorkflowError):
    code = "request_not_found"
    
    def __init__(self, request_id: int):
        super().__init__(f"Approval request {request_id} not found")
        self.request_id = request_id


class AlreadyProcessed(WorkflowError):
    """The request (or its workflow) was already decided."""
    
    code = "already_processed"
    
    def __init__(self, request_id: int, status: Optional[str] = None):
        detail = f" (status: {status})" if status else ""
        super().__init__(f"Approval request {request_id} already processed{detail}")
        self.request_id = request_id
        self.status = status


class InstanceNotFound(WorkflowError):
    code = "instance_not_found"
    
    def __init__(self, instance_id: int):
        super().__init__(f"Workflow instance {instance_id} not found")
        self.instance_id = instance_id


class InstanceNotActive(WorkflowError):
    """The instance already reached a terminal state."""
    
    code = "instance_not_active"
    
    def __init__(self, instance_id: int, status: str):
        super().__init__(f"Workflow instance {instance_id} is already {status}")
        self.instance_id = instance_id
        self.status = status


class InvalidWorkflowType(WorkflowError):
    code = "invalid_workflow_type"
    
    def __init__(self, value):
        super().__init__(f"Invalid workflow type: {value!r}")
        self.value = value


class InvalidEntityType(WorkflowError):
    code = "invalid_entity_type"
    
    def __init__(self, value):
        super().__init__(f"Invalid entity type: {value!r}")
        self.value = value


class InvalidStepConfiguration(WorkflowError):
    code = "invalid_step_configuration"


class WorkflowConfigurationError(WorkflowError):
    """Stored workflow data is inconsistent (e.g. current_step has no step).

    This is fatal for the affected instance and is never swallowed.
    """
    
    code = "workflow_configuration_error"
