"""Application bootstrap for infragraph.

Wires all components in dependency order.
Startup order: config -> logging -> state store -> providers -> stack
              -> planner -> executor

Every entry point (CLI commands, REST API) goes through InfraGraphApp so
that configuration, state locking semantics and logging are identical
regardless of how a run was started.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from infragraph.blueprints import DEFAULT_BLUEPRINT, load_blueprint
from infragraph.config import load_config
from infragraph.executor import ApplyExecutor, ProviderRegistry
from infragraph.graph import DependencyGraph, build_graph
from infragraph.models.config import InfraGraphConfig
from infragraph.models.plan import ApplyResult, FailurePolicy, Plan
from infragraph.observability.logging import bind_run_context, get_logger, setup_logging
from infragraph.params import ParameterResolver
from infragraph.planner import PlanEvaluator
from infragraph.providers import build_registry
from infragraph.state import StateStore

if TYPE_CHECKING:
    import structlog

    from infragraph.stack import Stack


class ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class InfraGraphApp:
    """Application root.  Owns every component of one run.

    Args:
        config:    Explicit configuration; loaded from the environment when None.
        registry:  Explicit provider registry; built from config when None.
        blueprint: Name of the blueprint that supplies the stack.
        stack:     Explicit stack, overriding the blueprint.
        configure_logging: Set False when the caller already configured structlog.
    """

    def __init__(
        self,
        config: InfraGraphConfig | None = None,
        registry: ProviderRegistry | None = None,
        blueprint: str = DEFAULT_BLUEPRINT,
        stack: Stack | None = None,
        configure_logging: bool = True,
    ) -> None:
        self.config = config
        self.registry = registry
        self.blueprint = blueprint
        self.stack = stack
        self.state: StateStore | None = None
        self._configure_logging = configure_logging
        self._started = False
        self._log: structlog.stdlib.BoundLogger | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Initialise every component.  Calling twice is a no-op.

        Raises:
            ComponentError: a mandatory component could not start.
        """
        if self._started:
            return

        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            try:
                self.config = load_config()
            except ValueError as exc:
                raise ComponentError("config", exc) from exc

        # --- 2. Logging -------------------------------------------------
        if self._configure_logging:
            setup_logging(self.config.log.level)
        self._log = get_logger("app")

        # --- 3. Stack ---------------------------------------------------
        if self.stack is None:
            try:
                self.stack = load_blueprint(self.blueprint, self.config.target)
            except Exception as exc:
                raise ComponentError("stack", exc) from exc
        bind_run_context(self.stack.name, uuid4().hex[:12])
        self._log.info(
            "infragraph_starting",
            version=_infragraph_version(),
            account=self.config.target.account,
            region=self.config.target.region,
        )

        # --- 4. State store ---------------------------------------------
        path = self.config.state.path if self.config.state.persistence_enabled else None
        state = StateStore(stack=self.stack.name, path=path)
        try:
            state.load()
        except Exception as exc:
            raise ComponentError("state", exc) from exc
        self.state = state

        # --- 5. Providers -----------------------------------------------
        if self.registry is None:
            try:
                self.registry = build_registry(self.config.provider, self.config.target)
            except ValueError as exc:
                raise ComponentError("providers", exc) from exc

        self._started = True
        self._log.info("infragraph_started", resources=len(self.stack.declarations), recorded=len(state))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def synthesize(self) -> dict[str, Any]:
        self.start()
        assert self.stack is not None
        return self.stack.synthesize()

    def graph(self) -> DependencyGraph:
        self.start()
        assert self.stack is not None
        return build_graph(self.stack.declarations)

    def resolve_parameters(self, supplied: Mapping[str, str] | None = None) -> dict[str, str]:
        self.start()
        assert self.stack is not None
        return ParameterResolver(self.stack.parameters).resolve(supplied)

    async def plan(self, supplied: Mapping[str, str] | None = None, refresh: bool = False) -> Plan:
        """Resolve parameters and compute a plan against current state.

        Parameters are resolved first, so a missing one fails before any
        graph or state work.
        """
        self.start()
        assert self.stack is not None
        assert self.state is not None
        values = self.resolve_parameters(supplied)
        if refresh:
            dropped = await self._executor().refresh()
            if dropped and self._log:
                self._log.warning("state_refreshed", dropped=dropped)
        return PlanEvaluator(self.state).plan(self.stack.declarations, values)

    async def apply(self, plan: Plan) -> ApplyResult:
        self.start()
        return await self._executor().apply(plan)

    async def destroy_plan(self) -> Plan:
        """Plan the deletion of everything recorded in state."""
        self.start()
        assert self.state is not None
        return PlanEvaluator(self.state).plan([], {})

    def _executor(self) -> ApplyExecutor:
        assert self.config is not None
        assert self.registry is not None
        assert self.state is not None
        apply_cfg = self.config.apply
        return ApplyExecutor(
            registry=self.registry,
            state=self.state,
            policy=FailurePolicy(apply_cfg.failure_policy),
            max_retries=apply_cfg.max_retries,
            backoff_seconds=apply_cfg.backoff_seconds,
            max_concurrency=apply_cfg.max_concurrency,
        )


def _infragraph_version() -> str:
    from infragraph import __version__

    return __version__
