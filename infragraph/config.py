"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from infragraph.models.config import (
    APIConfig,
    ApplyConfig,
    InfraGraphConfig,
    LogConfig,
    ProviderConfig,
    StateConfig,
    TargetConfig,
)

_FAILURE_POLICIES = {"halt", "rollback"}
_PROVIDER_MODES = {"simulated", "http"}


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"INFRAGRAPH_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float) -> float:
    return float(_env(key, str(default)))


def _first_env(*names: str) -> str:
    for name in names:
        value = os.environ.get(name, "")
        if value:
            return value
    return ""


def _validate_choice(name: str, value: str, valid: set[str]) -> str:
    if value.lower() not in valid:
        raise ValueError(f"Invalid {name}: {value}. Must be one of {sorted(valid)}")
    return value.lower()


def _validate_log_level(value: str) -> str:
    return _validate_choice("log level", value, {"debug", "info", "warning", "error"})


def load_target() -> TargetConfig:
    """Resolve the deployment account and region.

    Explicit deploy variables win over the toolchain defaults; the region
    falls back to INFRAGRAPH_DEFAULT_REGION.
    """
    return TargetConfig(
        account=_first_env("CDK_DEPLOY_ACCOUNT", "CDK_DEFAULT_ACCOUNT"),
        region=_first_env("CDK_DEPLOY_REGION", "CDK_DEFAULT_REGION") or _env("DEFAULT_REGION", "eu-west-1"),
    )


def load_config() -> InfraGraphConfig:
    """Load configuration from INFRAGRAPH_* environment variables."""
    return InfraGraphConfig(
        target=load_target(),
        state=StateConfig(
            path=_env("STATE_FILE", "infragraph.state.json"),
            persistence_enabled=_env_bool("STATE_PERSISTENCE_ENABLED", True),
        ),
        apply=ApplyConfig(
            failure_policy=_validate_choice(
                "failure policy", _env("APPLY_FAILURE_POLICY", "halt"), _FAILURE_POLICIES
            ),
            max_retries=_env_int("APPLY_MAX_RETRIES", 3, min_val=0, max_val=10),
            backoff_seconds=max(_env_float("APPLY_BACKOFF_SECONDS", 1.0), 0.0),
            max_concurrency=_env_int("APPLY_MAX_CONCURRENCY", 4, min_val=1, max_val=32),
        ),
        provider=ProviderConfig(
            mode=_validate_choice("provider mode", _env("PROVIDER_MODE", "simulated"), _PROVIDER_MODES),
            endpoint=_env("PROVIDER_ENDPOINT", ""),
            timeout_seconds=_env_int("PROVIDER_TIMEOUT", 30, min_val=1, max_val=300),
        ),
        api=APIConfig(
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
