"""Prometheus metrics for plan and apply runs."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

plans_total = Counter(
    "infragraph_plans_total",
    "Plans computed, labelled by whether they contained changes.",
    ["has_changes"],
)

actions_total = Counter(
    "infragraph_actions_total",
    "Planned actions executed, by action type and outcome.",
    ["action", "status"],
)

provider_retries_total = Counter(
    "infragraph_provider_retries_total",
    "Retryable provider failures that were retried.",
    ["kind"],
)

apply_duration_seconds = Histogram(
    "infragraph_apply_duration_seconds",
    "Wall-clock duration of an apply run.",
    buckets=(0.1, 0.5, 1, 5, 15, 60, 300, 900, 1800),
)
