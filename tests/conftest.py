"""Fixtures shared by unit and integration tests."""

from __future__ import annotations

from collections.abc import Iterator

import pytest
import structlog

from infragraph.models.config import InfraGraphConfig, StateConfig

FLUX_PARAMS = {"FluxRepoURL": "ssh://git@github.com/org/fleet.git", "FluxRepoPath": "clusters/green"}


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    """CLI runs bind structlog to a captured stream; undo that after each test."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture(autouse=True)
def _no_param_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("FLUXREPOURL", "FLUXREPOBRANCH", "FLUXREPOPATH"):
        monkeypatch.delenv(f"INFRAGRAPH_PARAM_{name}", raising=False)


@pytest.fixture
def flux_params() -> dict[str, str]:
    return dict(FLUX_PARAMS)


@pytest.fixture
def config(tmp_path) -> InfraGraphConfig:
    """Default configuration with the state file under tmp_path."""
    return InfraGraphConfig(state=StateConfig(path=str(tmp_path / "state.json")))
