"""Prometheus metrics for the assistant pipeline."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

stage_counter = Counter(
    "assistant_pipeline_stage_total",
    "Pipeline stage events",
    labelnames=("stage", "outcome"),
)
llm_request_duration = Histogram(
    "assistant_llm_request_duration_seconds",
    "Latency of language model calls",
    labelnames=("purpose", "model"),
)
llm_timeouts = Counter(
    "assistant_llm_timeouts_total",
    "Language model calls that timed out",
    labelnames=("purpose",),
)
web_search_failures = Counter(
    "assistant_web_search_failures_total",
    "Web searches that timed out or errored",
    labelnames=("reason",),
)
live_edit_counter = Counter(
    "assistant_live_edit_total",
    "Live-edit decisions",
    labelnames=("triggered",),
)


def record_stage(stage: str, outcome: str = "ok") -> None:
    """Increment the pipeline stage counter."""
    stage_counter.labels(stage=stage, outcome=outcome or "ok").inc()


def record_live_edit(triggered: bool) -> None:
    live_edit_counter.labels(triggered=str(bool(triggered)).lower()).inc()
