"""Approval workflow API endpoints."""

from contextlib import contextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from backoffice.api.deps import Actor, get_current_actor, get_db, get_workflow_engine, require_admin
from backoffice.api.schemas.approvals import (
    ActiveWorkflowResponse,
    ApprovalAction,
    ApprovalRequestResponse,
    BatchApprovalRequest,
    BatchApprovalResponse,
    CancelWorkflowRequest,
    PendingApprovalResponse,
    RejectionAction,
    StartWorkflowRequest,
    WorkflowDefinitionCreate,
    WorkflowDefinitionDetailResponse,
    WorkflowDefinitionResponse,
    WorkflowDefinitionUpdate,
    WorkflowInstanceDetailResponse,
    WorkflowInstanceResponse,
    WorkflowStepCreate,
    WorkflowStepResponse,
)
from backoffice.core.approval import (
    AlreadyProcessed,
    DefinitionNotFound,
    InstanceNotActive,
    InstanceNotFound,
    RequestNotFound,
    WorkflowEngine,
    WorkflowError,
)

router = APIRouter(prefix="/approvals", tags=["approvals"])

_ERROR_STATUS = (
    ((DefinitionNotFound, RequestNotFound, InstanceNotFound), status.HTTP_404_NOT_FOUND),
    ((AlreadyProcessed, InstanceNotActive), status.HTTP_409_CONFLICT),
)


def http_error(error: WorkflowError) -> HTTPException:
    """Map a workflow error to the HTTP response sent to the client."""
    for kinds, status_code in _ERROR_STATUS:
        if isinstance(error, kinds):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))


@contextmanager
def unit_of_work(db: Session, engine: WorkflowEngine):
    """
    Commit on success, then deliver the engine's events.
    
    On failure roll back, drop the queued events and translate workflow
    errors into HTTP errors.
    """
    try:
        yield
        db.commit()
    except WorkflowError as e:
        db.rollback()
        engine.discard_events()
        raise http_error(e)
    except Exception:
        db.rollback()
        engine.discard_events()
        raise
    engine.flush_events()


def _definition_detail(engine: WorkflowEngine, definition_id: int) -> WorkflowDefinitionDetailResponse:
    detail = engine.registry.get_with_steps(definition_id)
    return WorkflowDefinitionDetailResponse(
        **WorkflowDefinitionResponse.model_validate(detail.definition).model_dump(),
        steps=[WorkflowStepResponse.model_validate(s) for s in detail.steps],
    )


def _add_step(engine: WorkflowEngine, definition_id: int, step: WorkflowStepCreate):
    step_order = step.step_order
    if step_order is None:
        step_order = max((s.step_order for s in engine.registry.steps(definition_id)), default=0) + 1
    return engine.registry.add_step(
        definition_id,
        step_order,
        step.approver_type,
        step.approver_value,
        is_optional=step.is_optional,
        auto_approve_after_hours=step.auto_approve_after_hours,
    )


def _check_addressed(engine: WorkflowEngine, request_id: int, actor: Actor) -> None:
    request = engine.get_request(request_id)
    if not actor.is_admin and not engine.resolver.is_addressed_to(request.approver_email, actor.email):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Approval request is not addressed to you",
        )


# Definitions
@router.get("/workflows", response_model=List[WorkflowDefinitionResponse])
def list_workflows(
    entity_type: Optional[str] = None,
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor: Actor = Depends(get_current_actor),
):
    """List workflow definitions, defaults first."""
    try:
        definitions = engine.registry.list(entity_type)
    except WorkflowError as e:
        raise http_error(e)
    return [WorkflowDefinitionResponse.model_validate(d) for d in definitions]


@router.post("/workflows", response_model=WorkflowDefinitionDetailResponse, status_code=status.HTTP_201_CREATED)
def create_workflow(
    payload: WorkflowDefinitionCreate,
    db: Session = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor: Actor = Depends(require_admin),
):
    """Create a workflow definition, optionally with its steps."""
    with unit_of_work(db, engine):
        definition = engine.registry.create(
            payload.name,
            payload.entity_type,
            payload.workflow_type,
            description=payload.description,
            is_default=payload.is_default,
            is_active=payload.is_active,
        )
        for step in payload.steps:
            _add_step(engine, definition.id, step)
    return _definition_detail(engine, definition.id)


@router.get("/workflows/{definition_id}", response_model=WorkflowDefinitionDetailResponse)
def get_workflow(
    definition_id: int,
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor: Actor = Depends(get_current_actor),
):
    """Get a workflow definition with its steps."""
    try:
        return _definition_detail(engine, definition_id)
    except WorkflowError as e:
        raise http_error(e)


@router.patch("/workflows/{definition_id}", response_model=WorkflowDefinitionResponse)
def update_workflow(
    definition_id: int,
    payload: WorkflowDefinitionUpdate,
    db: Session = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor: Actor = Depends(require_admin),
):
    """Update a workflow definition. Promoting it to default demotes the previous default."""
    with unit_of_work(db, engine):
        definition = engine.registry.update(definition_id, **payload.model_dump(exclude_unset=True))
    return WorkflowDefinitionResponse.model_validate(definition)


@router.post(
    "/workflows/{definition_id}/steps",
    response_model=WorkflowStepResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_workflow_step(
    definition_id: int,
    payload: WorkflowStepCreate,
    db: Session = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor: Actor = Depends(require_admin),
):
    """Append a step to a workflow definition."""
    with unit_of_work(db, engine):
        step = _add_step(engine, definition_id, payload)
    return WorkflowStepResponse.model_validate(step)


# Instances
@router.post("/start", response_model=WorkflowInstanceResponse, status_code=status.HTTP_201_CREATED)
def start_workflow(
    payload: StartWorkflowRequest,
    db: Session = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor: Actor = Depends(get_current_actor),
):
    """Start an approval workflow for an entity."""
    with unit_of_work(db, engine):
        instance = engine.start_workflow(
            payload.entity_type,
            payload.entity_id,
            actor.email,
            definition_id=payload.workflow_definition_id,
            notes=payload.notes,
        )
    return WorkflowInstanceResponse.model_validate(instance)


@router.get("/active", response_model=List[ActiveWorkflowResponse])
def list_active_workflows(
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor: Actor = Depends(require_admin),
):
    """List in-flight workflows, newest first."""
    return [ActiveWorkflowResponse.model_validate(w) for w in engine.list_active_workflows()]


@router.get("/pending", response_model=List[PendingApprovalResponse])
def list_pending_approvals(
    approver_email: Optional[str] = Query(None, description="Admins only: inbox of another approver"),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor: Actor = Depends(get_current_actor),
):
    """List pending approval requests awaiting the caller, oldest first."""
    email = actor.email
    if approver_email and approver_email != actor.email:
        if not actor.is_admin:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
        email = approver_email
    return [PendingApprovalResponse.model_validate(p) for p in engine.get_pending_approvals_for_user(email)]


@router.get(
    "/entity/{entity_type}/{entity_id}",
    response_model=Optional[WorkflowInstanceDetailResponse],
)
def get_entity_workflow(
    entity_type: str,
    entity_id: int,
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor: Actor = Depends(get_current_actor),
):
    """Most recent workflow of an entity with its requests and history, or null."""
    try:
        detail = engine.get_entity_workflow_detail(entity_type, entity_id)
    except WorkflowError as e:
        raise http_error(e)
    return WorkflowInstanceDetailResponse.model_validate(detail) if detail else None


@router.get("/instance/{instance_id}", response_model=WorkflowInstanceDetailResponse)
def get_workflow_instance(
    instance_id: int,
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor: Actor = Depends(get_current_actor),
):
    """Get a workflow instance with its requests and history."""
    try:
        detail = engine.get_instance_detail(instance_id)
    except WorkflowError as e:
        raise http_error(e)
    return WorkflowInstanceDetailResponse.model_validate(detail)


@router.post("/instance/{instance_id}/cancel", response_model=WorkflowInstanceResponse)
def cancel_workflow(
    instance_id: int,
    payload: CancelWorkflowRequest,
    db: Session = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor: Actor = Depends(get_current_actor),
):
    """Cancel an in-flight workflow. Allowed for admins and the initiator."""
    with unit_of_work(db, engine):
        instance = engine.get_instance(instance_id)
        if not actor.is_admin and instance.initiated_by != actor.email:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the initiator or an admin can cancel a workflow",
            )
        instance = engine.cancel_workflow(instance_id, actor.email, payload.reason)
    return WorkflowInstanceResponse.model_validate(instance)


# Decisions
@router.post("/requests/{request_id}/approve", response_model=WorkflowInstanceResponse)
def approve_request(
    request_id: int,
    action: ApprovalAction,
    db: Session = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor: Actor = Depends(get_current_actor),
):
    """Approve a pending approval request."""
    with unit_of_work(db, engine):
        _check_addressed(engine, request_id, actor)
        instance = engine.approve(request_id, actor.email, action.comment)
    return WorkflowInstanceResponse.model_validate(instance)


@router.post("/requests/{request_id}/reject", response_model=WorkflowInstanceResponse)
def reject_request(
    request_id: int,
    action: RejectionAction,
    db: Session = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor: Actor = Depends(get_current_actor),
):
    """Reject a pending approval request, ending its workflow."""
    with unit_of_work(db, engine):
        _check_addressed(engine, request_id, actor)
        instance = engine.reject(request_id, actor.email, action.reason)
    return WorkflowInstanceResponse.model_validate(instance)


def _authorized_ids(engine: WorkflowEngine, request_ids: List[int], actor: Actor, failed: List[dict]) -> List[int]:
    allowed = []
    for request_id in request_ids:
        try:
            _check_addressed(engine, request_id, actor)
            allowed.append(request_id)
        except WorkflowError as e:
            failed.append({"id": request_id, "error": str(e)})
        except HTTPException as e:
            failed.append({"id": request_id, "error": e.detail})
    return allowed


@router.post("/batch/approve", response_model=BatchApprovalResponse)
def batch_approve(
    batch: BatchApprovalRequest,
    db: Session = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor: Actor = Depends(get_current_actor),
):
    """Approve multiple requests in a batch."""
    failed: List[dict] = []
    request_ids = _authorized_ids(engine, batch.request_ids, actor, failed)

    result = engine.batch_approve(request_ids, actor.email, batch.comment)
    db.commit()
    engine.flush_events()

    return BatchApprovalResponse(approved=result["approved"], failed=failed + result["failed"])


@router.post("/batch/reject", response_model=BatchApprovalResponse)
def batch_reject(
    batch: BatchApprovalRequest,
    db: Session = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    actor: Actor = Depends(get_current_actor),
):
    """Reject multiple requests in a batch."""
    if not batch.comment:
        raise HTTPException(status_code=400, detail="Comment is required for batch rejections")

    failed: List[dict] = []
    request_ids = _authorized_ids(engine, batch.request_ids, actor, failed)

    result = engine.batch_reject(request_ids, actor.email, batch.comment)
    db.commit()
    engine.flush_events()

    return BatchApprovalResponse(rejected=result["rejected"], failed=failed + result["failed"])
