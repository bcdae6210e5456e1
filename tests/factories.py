"""Factory functions for creating workflow definitions in tests.

Approvers are written the way an administrator thinks of them:
``"alice@example.com"`` is a user step, ``"role:admin"`` a role step and
``"client:buyer@example.com"`` a client step.

Usage::

    from tests.factories import create_workflow

    def test_something(engine):
        definition = create_workflow(engine.registry, "parallel", ["a@example.com", "role:admin"])
        instance = engine.start_workflow("proposal", 1, "pm@example.com")
"""

from typing import Iterable, Optional, Sequence, Tuple

from backoffice.core.approval import DefinitionRegistry, WorkflowDefinition


_counter = 0


def _next_id() -> int:
    """Return a monotonically increasing integer for unique default values."""
    global _counter
    _counter += 1
    return _counter


def parse_approver(approver: str) -> Tuple[str, str]:
    """Split ``"role:admin"`` style approvers into (approver_type, approver_value)."""
    for approver_type in ("role", "client"):
        prefix = f"{approver_type}:"
        if approver.startswith(prefix):
            return approver_type, approver[len(prefix):]
    return "user", approver


def create_workflow(
    registry: DefinitionRegistry,
    workflow_type: str = "sequential",
    approvers: Sequence[str] = ("alice@example.com",),
    *,
    entity_type: str = "proposal",
    name: Optional[str] = None,
    is_default: bool = True,
    step_orders: Optional[Sequence[int]] = None,
    optional_orders: Iterable[int] = (),
    auto_approve_after_hours: Optional[int] = None,
) -> WorkflowDefinition:
    """
    Create a definition with one step per approver.
    
    Step orders default to 1, 2, 3, ...; pass ``step_orders`` for gaps.
    """
    definition = registry.create(
        name or f"Workflow {_next_id()}",
        entity_type,
        workflow_type,
        is_default=is_default,
    )
    orders = list(step_orders) if step_orders else list(range(1, len(approvers) + 1))
    optional = set(optional_orders)
    for order, approver in zip(orders, approvers):
        approver_type, approver_value = parse_approver(approver)
        registry.add_step(
            definition.id,
            order,
            approver_type,
            approver_value,
            is_optional=order in optional,
            auto_approve_after_hours=auto_approve_after_hours,
        )
    return definition


def pending_for(engine, instance_id: int, email: str):
    """The single pending request of ``email`` on an instance."""
    matches = [
        r for r in engine.get_approval_requests(instance_id)
        if r.approver_email == email and r.status == "pending"
    ]
    assert len(matches) == 1, f"expected one pending request for {email}, got {matches}"
    return matches[0]
