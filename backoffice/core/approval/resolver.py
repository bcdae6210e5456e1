"""Approver resolution.

Maps a step's abstract approver reference to the concrete identities that
receive approval requests. Role membership is resolved once, when the step
goes live, so a later change in membership does not move a running workflow.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Protocol

from .states import ApproverType, parse_approver_type
from .types import WorkflowStep

logger = logging.getLogger(__name__)

ROLE_PREFIX = "role:"


def role_placeholder(role_name: str) -> str:
    """Approver address used when a role cannot be resolved to members."""
    return f"{ROLE_PREFIX}{role_name}"


def placeholder_role(approver_email: str) -> Optional[str]:
    """Return the role name of a placeholder address, or None."""
    if approver_email.startswith(ROLE_PREFIX):
        return approver_email[len(ROLE_PREFIX):]
    return None


class RoleResolver(Protocol):
    """Role membership lookup provided by the user-management collaborator."""

    def resolve_role(self, role_name: str) -> List[str]:
        """Return the email addresses currently holding a role."""
        ...


class StaticRoleResolver:
    """Role resolver over a fixed mapping (configuration or tests)."""

    def __init__(self, members: Optional[Mapping[str, Iterable[str]]] = None):
        self._members: Dict[str, List[str]] = {
            role: list(emails) for role, emails in (members or {}).items()
        }

    def resolve_role(self, role_name: str) -> List[str]:
        return list(self._members.get(role_name, []))


class ApproverResolver:
    """Turns a WorkflowStep into the list of approver addresses to ask."""

    def __init__(self, role_resolver: Optional[RoleResolver] = None):
        self.role_resolver = role_resolver

    def resolve(self, step: WorkflowStep) -> List[str]:
        approver_type = parse_approver_type(step.approver_type)
        if approver_type in (ApproverType.USER, ApproverType.CLIENT):
            return [step.approver_value]
        
        members = self._role_members(step.approver_value)
        if not members:
            logger.warning(
                "Role %r has no resolvable members, using placeholder approver",
                step.approver_value,
            )
            return [role_placeholder(step.approver_value)]
        return members

    def is_addressed_to(self, approver_email: str, email: str) -> bool:
        """Check whether a request addressed to ``approver_email`` belongs to ``email``."""
        if approver_email == email:
            return True
        role = placeholder_role(approver_email)
        if role is None:
            return False
        return email in self._role_members(role)

    def _role_members(self, role_name: str) -> List[str]:
        if self.role_resolver is None:
            return []
        members: List[str] = []
        for email in self.role_resolver.resolve_role(role_name):
            if email and email not in members:
                members.append(email)
        return members
