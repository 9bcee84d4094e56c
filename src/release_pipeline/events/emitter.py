"""Event sinks for pipeline runs.

The orchestrator reports every stage outcome, plus one error or completion
event per run, through an EventEmitter. Sinks:

- LoggingEventEmitter: one log line per event, readable in CI job output
- MetricsEventEmitter (metrics.py): Prometheus counters and histograms
- CompositeEventEmitter: fans out to several sinks
- NullEventEmitter: drops everything

Source:
- src/release_pipeline/events/models.py (PipelineEvent, EventType)
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Iterable, List, Optional

from src.release_pipeline.events.models import EventType, PipelineEvent


logger = logging.getLogger(__name__)


class EventSinkType(str, Enum):
    """Sinks selectable when building an emitter."""

    LOGGING = "logging"
    METRICS = "metrics"


class EventEmitter(ABC):
    """Destination for pipeline events.

    emit() is awaited inline by the orchestrator, so implementations should
    return quickly. The orchestrator logs and drops anything emit() raises.
    """

    @abstractmethod
    async def emit(self, event: PipelineEvent) -> None:
        ...

    async def close(self) -> None:
        """Flush and release resources. No-op by default."""


class LoggingEventEmitter(EventEmitter):
    """Writes each event as a single log line.

    The message names the stage and its outcome so CI logs read as a run
    summary; all event fields go into ``extra`` for structured handlers.

    Example:
        >>> emitter = LoggingEventEmitter()
        >>> await emitter.emit(event)
        # INFO - Stage deploy skipped (gate) at 6113728
    """

    def __init__(self, logger_name: Optional[str] = None):
        self._logger = logging.getLogger(logger_name) if logger_name else logger

    async def emit(self, event: PipelineEvent) -> None:
        level = logging.ERROR if event.event_type == EventType.ERROR else logging.INFO
        self._logger.log(
            level,
            "%s at %s",
            self._describe(event),
            event.commit_sha[:7],
            extra=event.to_log_dict(),
        )

    @staticmethod
    def _describe(event: PipelineEvent) -> str:
        details = event.details
        if event.event_type == EventType.STAGE_OUTCOME:
            outcome = details.get("outcome", "unknown")
            reason = details.get("skip_reason")
            if reason:
                outcome = f"{outcome} ({reason})"
            return f"Stage {details.get('stage', 'unknown')} {outcome}"
        if event.event_type == EventType.ERROR:
            return f"Pipeline failed in stage {details.get('stage', 'unknown')}"
        released = details.get("released_version")
        if released:
            return f"Pipeline completed, released v{released}"
        return "Pipeline completed"


class CompositeEventEmitter(EventEmitter):
    """Forwards each event to every child emitter.

    A child that raises is logged and skipped; the remaining children still
    receive the event.
    """

    def __init__(self, emitters: Optional[Iterable[EventEmitter]] = None):
        self._emitters: List[EventEmitter] = list(emitters or [])

    @property
    def emitters(self) -> List[EventEmitter]:
        return list(self._emitters)

    async def emit(self, event: PipelineEvent) -> None:
        for emitter in self._emitters:
            try:
                await emitter.emit(event)
            except Exception as e:
                logger.error(
                    "Event sink %s rejected %s event: %s",
                    type(emitter).__name__,
                    event.event_type.value,
                    e,
                    extra={
                        "emitter_type": type(emitter).__name__,
                        "event_type": event.event_type.value,
                        "commit_sha": event.commit_sha,
                    },
                )

    async def close(self) -> None:
        for emitter in self._emitters:
            try:
                await emitter.close()
            except Exception as e:
                logger.error("Failed to close %s: %s", type(emitter).__name__, e)


class NullEventEmitter(EventEmitter):
    async def emit(self, event: PipelineEvent) -> None:
        return None


def create_event_emitter(
    sink_types: Optional[List[EventSinkType]] = None,
    logger_name: Optional[str] = None,
) -> EventEmitter:
    """Build an emitter for the given sinks.

    No sinks means logging only. A single sink is returned as is, several
    are wrapped in a CompositeEventEmitter.
    """
    # metrics.py imports EventEmitter from this module
    from src.release_pipeline.events.metrics import MetricsEventEmitter

    emitters: List[EventEmitter] = []
    for sink_type in sink_types or [EventSinkType.LOGGING]:
        if sink_type == EventSinkType.LOGGING:
            emitters.append(LoggingEventEmitter(logger_name=logger_name))
        elif sink_type == EventSinkType.METRICS:
            emitters.append(MetricsEventEmitter())
        else:
            logger.warning("Unknown event sink type %s, skipping", sink_type)

    if not emitters:
        return LoggingEventEmitter(logger_name=logger_name)
    if len(emitters) == 1:
        return emitters[0]
    return CompositeEventEmitter(emitters)
