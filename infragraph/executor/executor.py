"""Apply Executor: run a Plan against the target system.

Actions run wave by wave in the order the plan computed.  Within a wave,
actions are independent of each other and run concurrently, bounded by a
semaphore.  The first fatal failure stops scheduling of later waves; the
failure policy then decides whether completed work stays (halt) or is
compensated in reverse order (rollback).
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

from infragraph.errors import ProviderError, StateError
from infragraph.executor.provider import ProviderRegistry
from infragraph.models.plan import (
    ActionOutcome,
    ActionStatus,
    ActionType,
    ApplyResult,
    FailurePolicy,
    Plan,
    PlannedAction,
)
from infragraph.models.resources import AppliedResource, Ref, ResourceDeclaration, transform
from infragraph.observability.logging import get_logger
from infragraph.observability.metrics import actions_total, apply_duration_seconds, provider_retries_total
from infragraph.state import StateStore, attributes_hash, compute_diff

_logger = get_logger("executor")

SleepFn = Callable[[float], Awaitable[None]]


class _UnrecordedChangeError(Exception):
    """The provider call went through but its state record could not be saved."""

    def __init__(self, physical_id: str, cause: StateError) -> None:
        super().__init__(str(cause))
        self.physical_id = physical_id


class ApplyExecutor:
    """Execute plans and keep the state store in step with the target."""

    def __init__(
        self,
        registry: ProviderRegistry,
        state: StateStore,
        policy: FailurePolicy = FailurePolicy.HALT,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        max_concurrency: int = 4,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._registry = registry
        self._state = state
        self._policy = policy
        self._max_retries = max_retries
        self._backoff = backoff_seconds
        self._max_concurrency = max(1, max_concurrency)
        self._sleep = sleep

    async def apply(self, plan: Plan) -> ApplyResult:
        """Execute every action of *plan* and report per-action outcomes.

        Raises:
            ProviderNotFoundError: an action's kind has no provider.  Checked
                before anything runs.
        """
        for action in plan.changes:
            self._registry.get(action.kind)

        started = time.perf_counter()
        by_name = {a.name: a for a in plan.actions}
        waves = plan.waves or [[a.name] for a in plan.actions]
        semaphore = asyncio.Semaphore(self._max_concurrency)

        outcomes: dict[str, ActionOutcome] = {}
        completed: list[PlannedAction] = []
        halted = False

        for index, wave in enumerate(waves):
            wave_actions = [by_name[name] for name in wave if name in by_name]
            if halted:
                for action in wave_actions:
                    outcomes[action.name] = ActionOutcome(action=action, status=ActionStatus.SKIPPED)
                continue

            _logger.debug("wave_started", wave=index, resources=[a.name for a in wave_actions])
            results = await asyncio.gather(*(self._run(action, semaphore) for action in wave_actions))
            for outcome in results:
                outcomes[outcome.action.name] = outcome
                if outcome.status == ActionStatus.FAILED:
                    halted = True
                    if outcome.physical_id:
                        completed.append(outcome.action)
                elif outcome.action.action != ActionType.NO_OP:
                    completed.append(outcome.action)

        if halted:
            _logger.warning(
                "apply_halted",
                policy=self._policy.value,
                failed=[n for n, o in outcomes.items() if o.status == ActionStatus.FAILED],
            )
            if self._policy == FailurePolicy.ROLLBACK:
                await self._compensate(completed, outcomes)

        result = ApplyResult(
            policy=self._policy,
            outcomes=[outcomes[a.name] for a in plan.actions if a.name in outcomes],
        )
        for outcome in result.outcomes:
            actions_total.labels(action=outcome.action.action.value, status=outcome.status.value).inc()
        elapsed = time.perf_counter() - started
        apply_duration_seconds.observe(elapsed)
        _logger.info(
            "apply_finished",
            ok=result.succeeded,
            duration_ms=round(elapsed * 1000, 1),
            **{s.value: len(result.by_status(s)) for s in ActionStatus},
        )
        return result

    async def refresh(self) -> list[str]:
        """Re-read every recorded resource from its provider.

        Records whose resource has vanished are dropped from state so the
        next plan recreates them; surviving records get fresh outputs.
        Returns the names of dropped records.
        """
        dropped: list[str] = []
        for record in self._state.all():
            provider = self._registry.get(record.kind.value)
            outputs = await provider.read(record.kind.value, record.physical_id)
            if outputs is None:
                self._state.remove(record.name)
                dropped.append(record.name)
                _logger.warning("resource_vanished", resource=record.name, physical_id=record.physical_id)
            else:
                record.outputs = outputs
        self._state.save()
        return dropped

    # ------------------------------------------------------------------
    # Single action
    # ------------------------------------------------------------------

    async def _run(self, action: PlannedAction, semaphore: asyncio.Semaphore) -> ActionOutcome:
        if action.action == ActionType.NO_OP:
            try:
                action = self._promote_if_stale(action)
            except ProviderError as exc:
                return self._failed(action, str(exc), 0, time.perf_counter())
            if action.action == ActionType.NO_OP:
                return ActionOutcome(action=action, status=ActionStatus.SUCCEEDED)

        async with semaphore:
            started = time.perf_counter()
            attempt = 0
            while True:
                attempt += 1
                try:
                    await self._execute(action)
                except ProviderError as exc:
                    if exc.retryable and attempt <= self._max_retries:
                        delay = self._backoff * (2 ** (attempt - 1))
                        provider_retries_total.labels(kind=action.kind).inc()
                        _logger.info(
                            "action_retrying",
                            resource=action.name,
                            action=action.action.value,
                            attempt=attempt,
                            delay_seconds=delay,
                            error=str(exc),
                        )
                        await self._sleep(delay)
                        continue
                    return self._failed(action, str(exc), attempt, started)
                except _UnrecordedChangeError as exc:
                    outcome = self._failed(
                        action, f"{exc} ({exc.physical_id} was changed but not recorded)", attempt, started
                    )
                    outcome.physical_id = exc.physical_id
                    return outcome
                except Exception as exc:  # noqa: BLE001
                    _logger.error("action_unexpected_error", resource=action.name, exc_info=True)
                    return self._failed(action, f"{type(exc).__name__}: {exc}", attempt, started)

                duration_ms = (time.perf_counter() - started) * 1000
                _logger.info(
                    "action_succeeded",
                    resource=action.name,
                    kind=action.kind,
                    action=action.action.value,
                    attempts=attempt,
                )
                return ActionOutcome(
                    action=action,
                    status=ActionStatus.SUCCEEDED,
                    attempts=attempt,
                    duration_ms=duration_ms,
                )

    def _promote_if_stale(self, action: PlannedAction) -> PlannedAction:
        """Turn a no_op into an update when its references now resolve differently.

        The plan renders references to an updated resource with the outputs
        recorded before the update.  Once that update has run, the dependent
        is resolved again against the fresh outputs.
        """
        if action.desired is None or action.previous is None or not action.desired.references():
            return action
        changes = compute_diff(action.previous.attributes, self._resolve(action.desired))
        if not changes:
            return action
        _logger.info(
            "action_promoted",
            resource=action.name,
            kind=action.kind,
            fields=[c.field_path for c in changes],
        )
        return replace(action, action=ActionType.UPDATE, changes=changes, reason="referenced outputs changed")

    def _failed(self, action: PlannedAction, error: str, attempts: int, started: float) -> ActionOutcome:
        _logger.error(
            "action_failed",
            resource=action.name,
            kind=action.kind,
            action=action.action.value,
            attempts=attempts,
            error=error,
        )
        return ActionOutcome(
            action=action,
            status=ActionStatus.FAILED,
            error=error,
            attempts=attempts,
            duration_ms=(time.perf_counter() - started) * 1000,
        )

    async def _execute(self, action: PlannedAction) -> None:
        provider = self._registry.get(action.kind)

        if action.action == ActionType.DELETE:
            assert action.previous is not None
            await provider.delete(action.kind, action.previous.physical_id)
            self._state.remove(action.name)
            try:
                self._state.save()
            except StateError as exc:
                raise _UnrecordedChangeError(action.previous.physical_id, exc) from exc
            return

        assert action.desired is not None
        attributes = self._resolve(action.desired)
        if action.action == ActionType.CREATE:
            result = await provider.create(action.kind, action.name, attributes)
        else:
            assert action.previous is not None
            result = await provider.update(
                action.kind, action.previous.physical_id, action.previous.attributes, attributes
            )
        try:
            self._record(action.desired, attributes, result.physical_id, result.outputs)
        except StateError as exc:
            raise _UnrecordedChangeError(result.physical_id, exc) from exc

    def _resolve(self, decl: ResourceDeclaration) -> dict[str, Any]:
        """Replace Refs with the outputs of already-applied resources."""

        def _lookup(leaf: Any) -> Any:
            if not isinstance(leaf, Ref):
                return leaf
            record = self._state.get(leaf.resource)
            if record is None:
                raise ProviderError(f"'{decl.name}' references '{leaf.resource}', which has not been applied")
            if leaf.attribute not in record.outputs:
                raise ProviderError(f"'{leaf.resource}' has no output '{leaf.attribute}' (referenced by '{decl.name}')")
            return record.outputs[leaf.attribute]

        return transform(decl.attributes, _lookup)

    def _record(
        self,
        decl: ResourceDeclaration,
        attributes: dict[str, Any],
        physical_id: str,
        outputs: dict[str, Any],
    ) -> None:
        dependencies = {ref.resource for ref in decl.references()} | set(decl.depends_on)
        self._state.put(
            AppliedResource(
                kind=decl.kind,
                name=decl.name,
                physical_id=physical_id,
                attributes=attributes,
                outputs=outputs,
                attributes_hash=attributes_hash(attributes),
                dependencies=sorted(dependencies),
            )
        )
        self._state.save()

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    async def _compensate(self, completed: list[PlannedAction], outcomes: dict[str, ActionOutcome]) -> None:
        """Undo completed actions newest first.  Failures are reported, never raised.

        State is saved once at the end, so a store that refuses to save does
        not stop the provider side from being undone.
        """
        undone: list[ActionOutcome] = []
        for action in reversed(completed):
            outcome = outcomes[action.name]
            try:
                await self._undo(action)
            except Exception as exc:  # noqa: BLE001
                outcome.error = f"compensation failed: {exc}"
                _logger.error("compensation_failed", resource=action.name, action=action.action.value, error=str(exc))
                continue
            if outcome.status == ActionStatus.FAILED:
                outcome.error += "; change undone"
            else:
                outcome.status = ActionStatus.COMPENSATED
            undone.append(outcome)
            _logger.info("action_compensated", resource=action.name, action=action.action.value)

        try:
            self._state.save()
        except StateError as exc:
            _logger.error("compensation_not_recorded", resources=[o.action.name for o in undone], error=str(exc))
            for outcome in undone:
                outcome.error = "; ".join(filter(None, [outcome.error, f"state not saved: {exc}"]))

    async def _undo(self, action: PlannedAction) -> None:
        provider = self._registry.get(action.kind)
        current = self._state.get(action.name)

        if action.action == ActionType.CREATE:
            if current is not None:
                await provider.delete(action.kind, current.physical_id)
            self._state.remove(action.name)
        elif action.action == ActionType.UPDATE:
            assert action.previous is not None
            if current is not None:
                await provider.update(
                    action.kind, current.physical_id, current.attributes, action.previous.attributes
                )
            self._state.put(action.previous)
        elif action.action == ActionType.DELETE:
            assert action.previous is not None
            result = await provider.create(action.kind, action.name, action.previous.attributes)
            self._state.put(replace(action.previous, physical_id=result.physical_id, outputs=result.outputs))
