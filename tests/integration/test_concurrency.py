"""Concurrency tests for decisions racing on the same workflow."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from backoffice.core.approval import AlreadyProcessed, WorkflowEventType
from tests.factories import create_workflow, pending_for

pytestmark = pytest.mark.integration

THREADS = 8


def _race(actions):
    """Run callables at the same moment; return their results or exceptions."""
    barrier = threading.Barrier(len(actions))

    def run(action):
        barrier.wait()
        try:
            return action()
        except AlreadyProcessed as e:
            return e

    with ThreadPoolExecutor(max_workers=len(actions)) as pool:
        return list(pool.map(run, actions))


class TestConcurrentDecisions:
    """Test that concurrent decisions are applied exactly once."""

    def test_same_request_approved_once(self, memory_engine):
        """Test that only one of many concurrent approvals of a request wins."""
        engine = memory_engine
        create_workflow(engine.registry, "any_one", ["a@example.com"])
        instance = engine.start_workflow("proposal", 1, "pm@example.com")
        request = pending_for(engine, instance.id, "a@example.com")

        results = _race([lambda: engine.approve(request.id, "a@example.com")] * THREADS)

        winners = [r for r in results if not isinstance(r, AlreadyProcessed)]
        assert len(winners) == 1
        actions = [h.action for h in engine.get_approval_history(instance.id)]
        assert actions.count("approved") == 1

    def test_parallel_steps_complete_exactly_once(self, memory_engine, observer):
        """Test that simultaneous approvals of every parallel step complete the workflow once."""
        engine = memory_engine
        approvers = [f"approver{i}@example.com" for i in range(THREADS)]
        create_workflow(engine.registry, "parallel", approvers)
        instance = engine.start_workflow("proposal", 1, "pm@example.com")
        requests = [pending_for(engine, instance.id, email) for email in approvers]

        results = _race([
            (lambda r=r: engine.approve(r.id, r.approver_email)) for r in requests
        ])

        assert not any(isinstance(r, AlreadyProcessed) for r in results)
        assert engine.get_instance(instance.id).status == "approved"
        assert len(observer.of_type(WorkflowEventType.WORKFLOW_COMPLETED)) == 1

    def test_any_one_race_between_approvers(self, memory_engine):
        """Test that racing approvals and rejections leave one consistent outcome."""
        engine = memory_engine
        approvers = [f"approver{i}@example.com" for i in range(THREADS)]
        create_workflow(engine.registry, "any_one", approvers)
        instance = engine.start_workflow("proposal", 1, "pm@example.com")
        requests = [pending_for(engine, instance.id, email) for email in approvers]

        actions = []
        for index, request in enumerate(requests):
            if index % 2:
                actions.append(lambda r=request: engine.reject(r.id, r.approver_email, "No"))
            else:
                actions.append(lambda r=request: engine.approve(r.id, r.approver_email))
        results = _race(actions)

        winners = [r for r in results if not isinstance(r, AlreadyProcessed)]
        assert len(winners) == 1
        final = engine.get_instance(instance.id)
        assert final.status in ("approved", "rejected")
        statuses = sorted(r.status for r in engine.get_approval_requests(instance.id))
        assert statuses.count("skipped") == THREADS - 1
        assert len(engine.get_approval_history(instance.id)) == 2
