"""Tests for the Apply Executor.

Failure policies, retry/backoff, wave scheduling and refresh, driven by
the simulated provider so every call is observable.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from structlog.testing import capture_logs

from infragraph.errors import ProviderNotFoundError, StateError
from infragraph.executor import ApplyExecutor, ProviderRegistry, ProviderResult, ResourceProvider
from infragraph.models.plan import ActionStatus, ActionType, FailurePolicy
from infragraph.models.resources import Ref, ResourceDeclaration, ResourceKind
from infragraph.planner import PlanEvaluator
from infragraph.providers import SimulatedProvider
from infragraph.state import StateStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _decls(min_size: int = 1) -> list[ResourceDeclaration]:
    return [
        ResourceDeclaration(ResourceKind.NETWORK, "vpc", {"cidr": "10.0.0.0/16", "max_azs": 2}),
        ResourceDeclaration(ResourceKind.ROLE, "role", {"assumed_by": "eks.amazonaws.com"}),
        ResourceDeclaration(
            ResourceKind.CLUSTER,
            "cluster",
            {"vpc_id": Ref("vpc", "vpc_id"), "role_arn": Ref("role", "arn")},
        ),
        ResourceDeclaration(
            ResourceKind.NODE_GROUP,
            "nodes",
            {
                "cluster_name": Ref("cluster", "name"),
                "subnets": Ref("vpc", "private_subnet_ids"),
                "min_size": min_size,
            },
        ),
    ]


def _network_and_cluster(max_azs: int = 2, cidr: str = "10.0.0.0/16") -> list[ResourceDeclaration]:
    return [
        ResourceDeclaration(ResourceKind.NETWORK, "vpc", {"cidr": cidr, "max_azs": max_azs}),
        ResourceDeclaration(ResourceKind.CLUSTER, "cluster", {"subnet_ids": Ref("vpc", "private_subnet_ids")}),
    ]


class _Sleeper:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _executor(provider: ResourceProvider, state: StateStore, **kwargs: Any) -> ApplyExecutor:
    kwargs.setdefault("sleep", _Sleeper())
    return ApplyExecutor(ProviderRegistry(fallback=provider), state, **kwargs)


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestApply:
    async def test_creates_in_dependency_order(self) -> None:
        provider = SimulatedProvider()
        state = StateStore("test")
        plan = PlanEvaluator(state).plan(_decls())

        result = await _executor(provider, state).apply(plan)

        assert result.succeeded
        created = [name for op, name in provider.calls if op == "create"]
        assert created.index("cluster") < created.index("nodes")
        assert created.index("vpc") < created.index("cluster")
        assert len(state) == 4

    async def test_refs_resolved_from_upstream_outputs(self) -> None:
        provider = SimulatedProvider()
        state = StateStore("test")
        await _executor(provider, state).apply(PlanEvaluator(state).plan(_decls()))

        nodes = state.get("nodes")
        vpc = state.get("vpc")
        assert nodes.attributes["cluster_name"] == "cluster"
        assert nodes.attributes["subnets"] == vpc.outputs["private_subnet_ids"]
        assert nodes.dependencies == ["cluster", "vpc"]

    async def test_reapply_is_no_op(self) -> None:
        provider = SimulatedProvider()
        state = StateStore("test")
        await _executor(provider, state).apply(PlanEvaluator(state).plan(_decls()))

        plan = PlanEvaluator(state).plan(_decls())
        assert plan.has_changes is False

        calls_before = len(provider.calls)
        result = await _executor(provider, state).apply(plan)
        assert result.succeeded
        assert len(provider.calls) == calls_before

    async def test_update_reuses_physical_id(self) -> None:
        provider = SimulatedProvider()
        state = StateStore("test")
        await _executor(provider, state).apply(PlanEvaluator(state).plan(_decls()))
        before = state.get("nodes").physical_id

        plan = PlanEvaluator(state).plan(_decls(min_size=3))
        assert [a.name for a in plan.changes] == ["nodes"]
        await _executor(provider, state).apply(plan)

        assert state.get("nodes").physical_id == before
        assert state.get("nodes").attributes["min_size"] == 3
        assert ("update", "nodes") in provider.calls

    async def test_delete_removes_dependents_first(self) -> None:
        provider = SimulatedProvider()
        state = StateStore("test")
        await _executor(provider, state).apply(PlanEvaluator(state).plan(_decls()))

        result = await _executor(provider, state).apply(PlanEvaluator(state).plan([]))

        assert result.succeeded
        deleted = [name for op, name in provider.calls if op == "delete"]
        assert deleted.index("nodes") < deleted.index("cluster")
        assert deleted.index("cluster") < deleted.index("vpc")
        assert len(state) == 0
        assert provider.resources == {}

    async def test_missing_provider_checked_before_running(self) -> None:
        provider = SimulatedProvider()
        state = StateStore("test")
        plan = PlanEvaluator(state).plan(_decls())
        registry = ProviderRegistry()
        registry.register(ResourceKind.NETWORK, provider)

        with pytest.raises(ProviderNotFoundError):
            await ApplyExecutor(registry, state).apply(plan)
        assert provider.calls == []

    async def test_finish_logged_with_status_counts(self) -> None:
        state = StateStore("test")
        plan = PlanEvaluator(state).plan(_decls())

        with capture_logs() as logs:
            result = await _executor(SimulatedProvider(), state).apply(plan)

        assert result.succeeded
        (finished,) = [e for e in logs if e["event"] == "apply_finished"]
        assert finished["ok"] is True
        assert finished["succeeded"] == 4
        assert finished["failed"] == 0


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailurePolicy:
    async def test_halt_keeps_completed_and_skips_later_waves(self) -> None:
        provider = SimulatedProvider(fail={"cluster"})
        state = StateStore("test")
        plan = PlanEvaluator(state).plan(_decls())

        result = await _executor(provider, state, policy=FailurePolicy.HALT).apply(plan)

        assert not result.succeeded
        assert result.by_status(ActionStatus.FAILED) == ["cluster"]
        assert result.by_status(ActionStatus.SKIPPED) == ["nodes"]
        assert sorted(result.by_status(ActionStatus.SUCCEEDED)) == ["role", "vpc"]
        assert sorted(r.name for r in state.all()) == ["role", "vpc"]
        assert ("create", "nodes") not in provider.calls

    async def test_halt_then_replan_resumes(self) -> None:
        provider = SimulatedProvider(fail={"cluster"})
        state = StateStore("test")
        await _executor(provider, state).apply(PlanEvaluator(state).plan(_decls()))

        provider._fail.clear()
        plan = PlanEvaluator(state).plan(_decls())
        assert sorted(a.name for a in plan.changes) == ["cluster", "nodes"]
        result = await _executor(provider, state).apply(plan)
        assert result.succeeded

    async def test_rollback_undoes_completed_creates(self) -> None:
        provider = SimulatedProvider(fail={"cluster"})
        state = StateStore("test")
        plan = PlanEvaluator(state).plan(_decls())

        result = await _executor(provider, state, policy=FailurePolicy.ROLLBACK).apply(plan)

        assert sorted(result.by_status(ActionStatus.COMPENSATED)) == ["role", "vpc"]
        assert result.by_status(ActionStatus.FAILED) == ["cluster"]
        assert len(state) == 0
        assert provider.resources == {}

    async def test_rollback_restores_previous_attributes(self) -> None:
        provider = SimulatedProvider()
        state = StateStore("test")
        await _executor(provider, state).apply(PlanEvaluator(state).plan(_decls()))

        decls = _decls(min_size=5)
        decls.append(ResourceDeclaration(ResourceKind.ADDON, "addon", {}, depends_on=("nodes",)))
        provider._fail.add("addon")
        plan = PlanEvaluator(state).plan(decls)

        result = await _executor(provider, state, policy=FailurePolicy.ROLLBACK).apply(plan)

        assert result.by_status(ActionStatus.COMPENSATED) == ["nodes"]
        assert state.get("nodes").attributes["min_size"] == 1
        assert "addon" not in state

    async def test_unexpected_exception_becomes_failure(self) -> None:
        class _Broken(SimulatedProvider):
            async def create(self, kind: str, name: str, attributes: dict[str, Any]) -> ProviderResult:
                raise RuntimeError("boom")

        state = StateStore("test")
        plan = PlanEvaluator(state).plan(_decls()[:1])
        result = await _executor(_Broken(), state).apply(plan)

        (outcome,) = result.failed
        assert "RuntimeError: boom" in outcome.error
        assert outcome.attempts == 1


class _RefusingStore(StateStore):
    """Refuses to save while *refuse* is recorded, like a full disk or a newer writer."""

    def __init__(self, refuse: str) -> None:
        super().__init__("test")
        self.refuse = refuse

    def save(self) -> None:
        if self.refuse in self:
            raise StateError("disk full")
        super().save()


class TestUnrecordedChanges:
    async def test_halt_reports_physical_id(self) -> None:
        provider = SimulatedProvider()
        state = _RefusingStore("cluster")
        plan = PlanEvaluator(state).plan(_decls())

        result = await _executor(provider, state).apply(plan)

        (outcome,) = result.failed
        created = next(pid for pid, entry in provider.resources.items() if entry["name"] == "cluster")
        assert outcome.action.name == "cluster"
        assert outcome.physical_id == created
        assert created in outcome.error
        assert "disk full" in outcome.error
        reported = next(o for o in result.to_dict()["outcomes"] if o["name"] == "cluster")
        assert reported["physical_id"] == created
        assert result.by_status(ActionStatus.SKIPPED) == ["nodes"]

    async def test_rollback_deletes_unrecorded_resource(self) -> None:
        provider = SimulatedProvider()
        state = _RefusingStore("cluster")
        plan = PlanEvaluator(state).plan(_decls())

        result = await _executor(provider, state, policy=FailurePolicy.ROLLBACK).apply(plan)

        assert result.by_status(ActionStatus.FAILED) == ["cluster"]
        assert sorted(result.by_status(ActionStatus.COMPENSATED)) == ["role", "vpc"]
        assert "change undone" in result.failed[0].error
        assert provider.resources == {}
        assert len(state) == 0
        assert ("delete", "cluster") in provider.calls


class TestRetries:
    async def test_retryable_errors_back_off_exponentially(self) -> None:
        provider = SimulatedProvider(flaky={"vpc": 2})
        state = StateStore("test")
        sleeper = _Sleeper()
        plan = PlanEvaluator(state).plan(_decls()[:1])

        result = await _executor(provider, state, sleep=sleeper, backoff_seconds=0.5).apply(plan)

        assert result.succeeded
        assert result.outcomes[0].attempts == 3
        assert sleeper.delays == [0.5, 1.0]

    async def test_retries_exhausted(self) -> None:
        provider = SimulatedProvider(flaky={"vpc": 10})
        state = StateStore("test")
        sleeper = _Sleeper()
        plan = PlanEvaluator(state).plan(_decls()[:1])

        result = await _executor(provider, state, sleep=sleeper, max_retries=2).apply(plan)

        (outcome,) = result.failed
        assert outcome.attempts == 3
        assert len(sleeper.delays) == 2

    async def test_fatal_errors_not_retried(self) -> None:
        provider = SimulatedProvider(fail={"vpc"})
        state = StateStore("test")
        sleeper = _Sleeper()
        plan = PlanEvaluator(state).plan(_decls()[:1])

        result = await _executor(provider, state, sleep=sleeper).apply(plan)

        assert result.failed[0].attempts == 1
        assert sleeper.delays == []


# ---------------------------------------------------------------------------
# Convergence after upstream updates
# ---------------------------------------------------------------------------


class TestConvergence:
    async def test_dependent_follows_changed_outputs(self) -> None:
        provider = SimulatedProvider()
        state = StateStore("test")
        await _executor(provider, state).apply(PlanEvaluator(state).plan(_network_and_cluster(max_azs=2)))

        plan = PlanEvaluator(state).plan(_network_and_cluster(max_azs=3))
        assert plan.summary()["update"] == 1
        assert plan.summary()["no_op"] == 1

        result = await _executor(provider, state).apply(plan)

        assert result.succeeded
        cluster = next(o for o in result.outcomes if o.action.name == "cluster")
        assert cluster.action.action == ActionType.UPDATE
        assert ("update", "cluster") in provider.calls
        assert len(state.get("cluster").attributes["subnet_ids"]) == 3
        assert state.get("cluster").attributes["subnet_ids"] == state.get("vpc").outputs["private_subnet_ids"]
        assert PlanEvaluator(state).plan(_network_and_cluster(max_azs=3)).has_changes is False

    async def test_unchanged_outputs_leave_dependents_alone(self) -> None:
        provider = SimulatedProvider()
        state = StateStore("test")
        await _executor(provider, state).apply(PlanEvaluator(state).plan(_network_and_cluster()))

        plan = PlanEvaluator(state).plan(_network_and_cluster(cidr="10.1.0.0/16"))
        result = await _executor(provider, state).apply(plan)

        assert result.succeeded
        assert ("update", "vpc") in provider.calls
        assert ("update", "cluster") not in provider.calls

    async def test_rollback_reverts_followed_update(self) -> None:
        provider = SimulatedProvider()
        state = StateStore("test")
        await _executor(provider, state).apply(PlanEvaluator(state).plan(_network_and_cluster(max_azs=2)))

        decls = _network_and_cluster(max_azs=3)
        decls.append(ResourceDeclaration(ResourceKind.ADDON, "addon", {}, depends_on=("cluster",)))
        provider._fail.add("addon")
        plan = PlanEvaluator(state).plan(decls)

        result = await _executor(provider, state, policy=FailurePolicy.ROLLBACK).apply(plan)

        assert sorted(result.by_status(ActionStatus.COMPENSATED)) == ["cluster", "vpc"]
        assert len(state.get("cluster").attributes["subnet_ids"]) == 2
        assert state.get("vpc").attributes["max_azs"] == 2

    @settings(max_examples=25, deadline=None)
    @given(st.lists(st.integers(min_value=1, max_value=4), min_size=1, max_size=4))
    def test_every_apply_converges(self, sizes: list[int]) -> None:
        async def _scenario() -> None:
            provider = SimulatedProvider()
            state = StateStore("test")
            for azs in sizes:
                result = await _executor(provider, state).apply(PlanEvaluator(state).plan(_network_and_cluster(azs)))
                assert result.succeeded
                assert PlanEvaluator(state).plan(_network_and_cluster(azs)).has_changes is False

        asyncio.run(_scenario())


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class _Tracking(SimulatedProvider):
    def __init__(self) -> None:
        super().__init__()
        self.active = 0
        self.peak = 0

    async def create(self, kind: str, name: str, attributes: dict[str, Any]) -> ProviderResult:
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.01)
        try:
            return await super().create(kind, name, attributes)
        finally:
            self.active -= 1


class TestConcurrency:
    def _independent(self, count: int) -> list[ResourceDeclaration]:
        return [ResourceDeclaration(ResourceKind.CUSTOM, f"r{i}", {}) for i in range(count)]

    async def test_independent_actions_run_concurrently(self) -> None:
        provider = _Tracking()
        state = StateStore("test")
        plan = PlanEvaluator(state).plan(self._independent(6))

        await _executor(provider, state, max_concurrency=3).apply(plan)

        assert provider.peak == 3
        assert len(state) == 6

    async def test_concurrency_of_one_is_sequential(self) -> None:
        provider = _Tracking()
        state = StateStore("test")
        plan = PlanEvaluator(state).plan(self._independent(4))

        await _executor(provider, state, max_concurrency=1).apply(plan)

        assert provider.peak == 1


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------


class TestRefresh:
    async def test_vanished_resources_dropped_and_recreated(self) -> None:
        provider = SimulatedProvider()
        state = StateStore("test")
        await _executor(provider, state).apply(PlanEvaluator(state).plan(_decls()))

        provider.resources.pop(state.get("nodes").physical_id)
        dropped = await _executor(provider, state).refresh()

        assert dropped == ["nodes"]
        plan = PlanEvaluator(state).plan(_decls())
        assert [(a.name, a.action) for a in plan.changes] == [("nodes", ActionType.CREATE)]

    async def test_surviving_resources_keep_records(self) -> None:
        provider = SimulatedProvider()
        state = StateStore("test")
        await _executor(provider, state).apply(PlanEvaluator(state).plan(_decls()))

        assert await _executor(provider, state).refresh() == []
        assert len(state) == 4
