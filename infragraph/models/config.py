"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class TargetConfig:
    """Deployment target resolved from the process environment."""

    account: str = ""
    region: str = "eu-west-1"


@dataclass
class StateConfig:
    """Last-applied state storage configuration."""

    path: str = "infragraph.state.json"
    persistence_enabled: bool = True


@dataclass
class ApplyConfig:
    """Apply executor configuration."""

    failure_policy: str = "halt"
    max_retries: int = 3
    backoff_seconds: float = 1.0
    max_concurrency: int = 4


@dataclass
class ProviderConfig:
    """Provider backend configuration."""

    mode: str = "simulated"
    endpoint: str = ""
    timeout_seconds: int = 30


@dataclass
class APIConfig:
    """REST API configuration."""

    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class InfraGraphConfig:
    """Top-level infragraph configuration."""

    target: TargetConfig = field(default_factory=TargetConfig)
    state: StateConfig = field(default_factory=StateConfig)
    apply: ApplyConfig = field(default_factory=ApplyConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
