"""Tests for approval workflow states and transitions."""

import pytest

from backoffice.core.approval.errors import InvalidEntityType, InvalidStepConfiguration, InvalidWorkflowType
from backoffice.core.approval.states import (
    ACTIVE_WORKFLOW_STATES,
    TERMINAL_WORKFLOW_STATES,
    ApproverType,
    EntityType,
    RequestStatus,
    WorkflowStatus,
    WorkflowType,
    can_transition_request,
    can_transition_workflow,
    is_terminal,
    parse_approver_type,
    parse_entity_type,
    parse_workflow_type,
)


class TestWorkflowStates:
    """Test workflow status definitions."""
    
    def test_all_statuses_defined(self):
        """Test that all expected instance statuses exist."""
        for name in ["pending", "in_progress", "approved", "rejected", "cancelled"]:
            assert WorkflowStatus(name).value == name
    
    def test_terminal_states(self):
        """Test terminal state definitions."""
        assert TERMINAL_WORKFLOW_STATES == {
            WorkflowStatus.APPROVED,
            WorkflowStatus.REJECTED,
            WorkflowStatus.CANCELLED,
        }
        assert is_terminal("approved")
        assert not is_terminal("in_progress")
    
    def test_active_states(self):
        """Test active state definitions."""
        assert ACTIVE_WORKFLOW_STATES == {WorkflowStatus.PENDING, WorkflowStatus.IN_PROGRESS}
        assert not ACTIVE_WORKFLOW_STATES & TERMINAL_WORKFLOW_STATES


class TestTransitions:
    """Test status transition rules."""
    
    @pytest.mark.parametrize("to_status", ["approved", "rejected", "cancelled"])
    def test_in_progress_can_finish(self, to_status):
        """Test that an in-progress instance can reach every terminal state."""
        assert can_transition_workflow("in_progress", to_status)
    
    @pytest.mark.parametrize("from_status", ["approved", "rejected", "cancelled"])
    @pytest.mark.parametrize("to_status", ["pending", "in_progress", "approved", "rejected", "cancelled"])
    def test_terminal_states_are_final(self, from_status, to_status):
        """Test that terminal instances never move again."""
        assert not can_transition_workflow(from_status, to_status)
    
    def test_requests_only_leave_pending(self):
        """Test that requests move forward from pending only."""
        assert can_transition_request("pending", "approved")
        assert can_transition_request("pending", "rejected")
        assert can_transition_request("pending", "skipped")
        assert not can_transition_request("approved", "rejected")
        assert not can_transition_request("skipped", "pending")


class TestParsing:
    """Test coercion of stored and user supplied values."""
    
    def test_parse_known_values(self):
        """Test that known values and enum members are accepted."""
        assert parse_entity_type("invoice") is EntityType.INVOICE
        assert parse_entity_type(EntityType.CONTRACT) is EntityType.CONTRACT
        assert parse_workflow_type("any_one") is WorkflowType.ANY_ONE
        assert parse_approver_type("client") is ApproverType.CLIENT
    
    def test_unknown_entity_type(self):
        """Test that an unknown entity type raises InvalidEntityType."""
        with pytest.raises(InvalidEntityType) as exc_info:
            parse_entity_type("spaceship")
        assert exc_info.value.code == "invalid_entity_type"
    
    def test_unknown_workflow_type(self):
        """Test that an unknown workflow type raises InvalidWorkflowType."""
        with pytest.raises(InvalidWorkflowType):
            parse_workflow_type("majority")
    
    def test_unknown_approver_type(self):
        """Test that an unknown approver type is a step configuration error."""
        with pytest.raises(InvalidStepConfiguration):
            parse_approver_type("team")
