"""Tests for seeding default workflows."""

import pytest

from backoffice.core.approval import DefinitionRegistry, WorkflowConfigurationError
from backoffice.db.seed import (
    DEFAULT_WORKFLOWS_FILE,
    load_workflow_entries,
    seed_default_workflows,
    seed_workflows,
)
from backoffice.db.stores import SqlDefinitionStore


class TestSeedWorkflows:
    """Test YAML seeding."""

    def test_bundled_defaults(self, db_session):
        """Test that the bundled file creates defaults for proposals, contracts and invoices."""
        seeded = seed_default_workflows(db_session)
        registry = DefinitionRegistry(SqlDefinitionStore(db_session))

        assert registry.get_default("proposal").name == "Standard Proposal Approval"
        assert registry.get_default("contract").workflow_type == "any_one"
        two_step = seeded["Two-Step Proposal Approval"]
        assert two_step.is_default is False
        steps = registry.steps(two_step.id)
        assert [(s.step_order, s.approver_value) for s in steps] == [(1, "account_manager"), (2, "admin")]
        invoice_steps = registry.steps(registry.get_default("invoice").id)
        assert invoice_steps[0].auto_approve_after_hours == 72

    def test_seeding_is_idempotent(self, db_session):
        """Test that seeding twice creates nothing new."""
        first = seed_default_workflows(db_session)
        second = seed_default_workflows(db_session)
        registry = DefinitionRegistry(SqlDefinitionStore(db_session))

        assert {k: d.id for k, d in first.items()} == {k: d.id for k, d in second.items()}
        assert len(registry.list()) == len(load_workflow_entries(DEFAULT_WORKFLOWS_FILE))

    def test_explicit_step_orders(self, engine):
        """Test that entries may number their steps."""
        entries = [{
            "name": "Gapped",
            "entity_type": "deliverable",
            "workflow_type": "sequential",
            "steps": [
                {"step_order": 10, "approver_type": "user", "approver_value": "a@example.com"},
                {"step_order": 20, "approver_type": "client", "approver_value": "buyer@client.example"},
            ],
        }]

        seeded = seed_workflows(engine.registry, entries)

        orders = [s.step_order for s in engine.registry.steps(seeded["Gapped"].id)]
        assert orders == [10, 20]

    def test_malformed_file(self, tmp_path):
        """Test that a file without a workflows list is rejected."""
        path = tmp_path / "workflows.yaml"
        path.write_text("definitions: []\n")

        with pytest.raises(WorkflowConfigurationError):
            load_workflow_entries(path)
