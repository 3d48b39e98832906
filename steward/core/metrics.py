from __future__ import annotations

from prometheus_client import Counter, Histogram

ORCHESTRATOR_RUNS_TOTAL = Counter(
    "steward_orchestrator_runs_total",
    "Total orchestrator runs by status",
    labelnames=("status",),
)

ORCHESTRATOR_RUN_LATENCY_SECONDS = Histogram(
    "steward_orchestrator_run_latency_seconds",
    "End-to-end orchestrator runtime",
    buckets=(0.5, 1, 2, 5, 10, 30, 60, 120, 300, float("inf")),
)

TOOL_CALLS_TOTAL = Counter(
    "steward_tool_calls_total",
    "Tool invocations grouped by outcome",
    labelnames=("tool", "outcome"),
)

TOOL_LATENCY_SECONDS = Histogram(
    "steward_tool_latency_seconds",
    "Latency for each tool invocation",
    labelnames=("tool",),
)

PLANNER_OUTCOMES_TOTAL = Counter(
    "steward_planner_outcomes_total",
    "Planner results grouped by the strategy that produced the plan",
    labelnames=("strategy",),
)

PROVIDER_FAILURES_TOTAL = Counter(
    "steward_provider_failures_total",
    "Provider generation failures recovered at a call site",
    labelnames=("phase",),
)


def record_run(*, status: str, latency: float) -> None:
    ORCHESTRATOR_RUNS_TOTAL.labels(status=status).inc()
    ORCHESTRATOR_RUN_LATENCY_SECONDS.observe(latency)


def record_tool_call(*, tool: str, success: bool, latency: float) -> None:
    outcome = "success" if success else "failure"
    TOOL_CALLS_TOTAL.labels(tool=tool, outcome=outcome).inc()
    TOOL_LATENCY_SECONDS.labels(tool=tool).observe(latency)


def record_planner_outcome(*, strategy: str) -> None:
    PLANNER_OUTCOMES_TOTAL.labels(strategy=strategy).inc()


def record_provider_failure(*, phase: str) -> None:
    PROVIDER_FAILURES_TOTAL.labels(phase=phase).inc()
