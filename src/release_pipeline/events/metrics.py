"""Prometheus metrics for pipeline observability.

Metrics are exposed at the `/metrics` endpoint of the webhook server and
can be pushed to a Pushgateway by the CLI.

Metrics Defined:
- release_pipeline_runs_total: Counter of runs by result
- release_pipeline_stage_outcomes_total: Counter of stage outcomes
- release_pipeline_stage_failures_total: Counter of failures by stage
- release_pipeline_run_duration_seconds: Histogram of run duration

The MetricsEventEmitter updates these metrics from pipeline events.

Source:
- src/release_pipeline/events/models.py (PipelineEvent, EventType)
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from src.release_pipeline.events.emitter import EventEmitter
from src.release_pipeline.events.models import EventType, PipelineEvent


logger = logging.getLogger(__name__)


# Covers a quick PR build up to a long cloud deployment
DEFAULT_DURATION_BUCKETS = (
    10.0,
    30.0,
    60.0,
    120.0,
    300.0,
    600.0,
    1200.0,
    1800.0,
    3600.0,
    7200.0,
)


class PipelineMetrics:
    """Container for all pipeline Prometheus metrics.

    Supports custom registries for testing.

    Metrics:
        runs_total: Labels repository, result (success/failure).
        stage_outcomes_total: Labels stage, outcome.
        stage_failures_total: Labels repository, stage.
        run_duration_seconds: Labels repository.

    Example:
        >>> metrics = PipelineMetrics(registry=CollectorRegistry())
        >>> metrics.record_run("org/repo", success=True)
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.runs_total = Counter(
            "release_pipeline_runs_total",
            "Total number of pipeline runs",
            labelnames=["repository", "result"],
            registry=self.registry,
        )

        self.stage_outcomes_total = Counter(
            "release_pipeline_stage_outcomes_total",
            "Stage outcomes across all runs",
            labelnames=["stage", "outcome"],
            registry=self.registry,
        )

        self.stage_failures_total = Counter(
            "release_pipeline_stage_failures_total",
            "Pipeline runs that failed, by failing stage",
            labelnames=["repository", "stage"],
            registry=self.registry,
        )

        self.run_duration_seconds = Histogram(
            "release_pipeline_run_duration_seconds",
            "Time spent in a pipeline run in seconds",
            labelnames=["repository"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_run(self, repository: str, success: bool) -> None:
        result = "success" if success else "failure"
        self.runs_total.labels(repository=repository, result=result).inc()

    def record_stage_outcome(self, stage: str, outcome: str) -> None:
        self.stage_outcomes_total.labels(stage=stage, outcome=outcome).inc()

    def record_failure(self, repository: str, stage: str) -> None:
        self.stage_failures_total.labels(repository=repository, stage=stage).inc()

    def record_run_duration(self, repository: str, duration_seconds: float) -> None:
        self.run_duration_seconds.labels(repository=repository).observe(
            duration_seconds
        )


# Global metrics instance for the default registry
_default_metrics: Optional[PipelineMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> PipelineMetrics:
    """Get or create the pipeline metrics instance.

    Args:
        registry: Optional Prometheus registry. If None, returns the
                  global metrics instance for the default registry.

    Returns:
        PipelineMetrics: The metrics instance.
    """
    global _default_metrics

    if registry is not None:
        return PipelineMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = PipelineMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus text format output for the /metrics endpoint."""
    target_registry = registry or REGISTRY
    return generate_latest(target_registry)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    - STAGE_OUTCOME: Increments stage_outcomes_total
    - ERROR: Increments runs_total (failure) and stage_failures_total
    - COMPLETION: Increments runs_total (success)

    ERROR and COMPLETION also record the run duration when present.

    Attributes:
        metrics: The PipelineMetrics instance to update.
    """

    def __init__(
        self,
        metrics: Optional[PipelineMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        if metrics is not None:
            self._metrics = metrics
        else:
            self._metrics = get_metrics(registry)

    @property
    def metrics(self) -> PipelineMetrics:
        return self._metrics

    async def emit(self, event: PipelineEvent) -> None:
        try:
            if event.event_type == EventType.STAGE_OUTCOME:
                self._handle_stage_outcome(event)
            elif event.event_type == EventType.ERROR:
                self._handle_error(event)
            elif event.event_type == EventType.COMPLETION:
                self._handle_completion(event)
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={
                    "event_type": event.event_type.value,
                    "commit_sha": event.commit_sha,
                    "error": str(e),
                },
            )

    def _handle_stage_outcome(self, event: PipelineEvent) -> None:
        self._metrics.record_stage_outcome(
            stage=event.details.get("stage", "unknown"),
            outcome=event.details.get("outcome", "unknown"),
        )

    def _handle_error(self, event: PipelineEvent) -> None:
        self._metrics.record_run(repository=event.repository, success=False)
        self._metrics.record_failure(
            repository=event.repository,
            stage=event.details.get("stage", "unknown"),
        )
        self._record_duration(event)

    def _handle_completion(self, event: PipelineEvent) -> None:
        self._metrics.record_run(repository=event.repository, success=True)
        self._record_duration(event)

    def _record_duration(self, event: PipelineEvent) -> None:
        duration = event.details.get("duration_seconds")
        if duration is not None:
            self._metrics.record_run_duration(
                repository=event.repository,
                duration_seconds=float(duration),
            )
