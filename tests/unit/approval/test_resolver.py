"""Tests for approver resolution."""

from backoffice.core.approval.resolver import (
    ApproverResolver,
    StaticRoleResolver,
    placeholder_role,
    role_placeholder,
)
from backoffice.core.approval.types import WorkflowStep


def _step(approver_type, approver_value):
    return WorkflowStep(
        workflow_definition_id=1, step_order=1, approver_type=approver_type, approver_value=approver_value,
    )


class TestResolve:
    """Test turning steps into approver addresses."""

    def test_user_and_client_are_copied(self):
        """Test that user and client steps address their value directly."""
        resolver = ApproverResolver()
        assert resolver.resolve(_step("user", "a@example.com")) == ["a@example.com"]
        assert resolver.resolve(_step("client", "buyer@client.example")) == ["buyer@client.example"]

    def test_role_members_deduplicated(self):
        """Test that role members are returned once each, in order."""
        resolver = ApproverResolver(StaticRoleResolver({
            "admin": ["owner@example.com", "", "ops@example.com", "owner@example.com"],
        }))
        assert resolver.resolve(_step("role", "admin")) == ["owner@example.com", "ops@example.com"]

    def test_role_without_members(self, caplog):
        """Test the placeholder fallback and its warning."""
        resolver = ApproverResolver(StaticRoleResolver({"admin": []}))

        assert resolver.resolve(_step("role", "admin")) == ["role:admin"]
        assert "no resolvable members" in caplog.text

    def test_role_without_resolver(self):
        """Test that roles resolve to placeholders when no resolver is configured."""
        assert ApproverResolver().resolve(_step("role", "finance")) == ["role:finance"]


class TestAddressing:
    """Test request ownership checks."""

    def test_direct_address(self):
        """Test that a request belongs to its own approver only."""
        resolver = ApproverResolver()
        assert resolver.is_addressed_to("a@example.com", "a@example.com")
        assert not resolver.is_addressed_to("a@example.com", "b@example.com")

    def test_placeholder_address(self):
        """Test that role placeholders belong to the role's current members."""
        resolver = ApproverResolver(StaticRoleResolver({"legal": ["counsel@example.com"]}))
        assert resolver.is_addressed_to("role:legal", "counsel@example.com")
        assert not resolver.is_addressed_to("role:legal", "intern@example.com")

    def test_placeholder_helpers(self):
        """Test conversion between role names and placeholder addresses."""
        assert role_placeholder("admin") == "role:admin"
        assert placeholder_role("role:admin") == "admin"
        assert placeholder_role("admin@example.com") is None
