"""Stage gate evaluation for trigger events.

All commit-message matching lives here. The vocabulary is a fixed set of
conventional prefixes, matched exactly, case-sensitively and only at the
start of the message:

    feat:     minor version bump
    doc:      deploy, but do not release
    format:   deploy, but do not release
    release:  neither deploy nor release (version-update merges)

Gates are pure functions of the event. A malformed or empty commit message
fails every prefix check and is never an error.
"""

from enum import Enum

from src.release_pipeline.trigger.models import EventType, GateDecision, TriggerEvent
from src.release_pipeline.version.models import BumpKind


class CommitPrefix(str, Enum):
    """Commit message prefixes recognised by the gates."""

    FEAT = "feat:"
    DOC = "doc:"
    FORMAT = "format:"
    RELEASE = "release:"


# Prefixes that deploy but skip the release stage
NO_RELEASE_PREFIXES = (CommitPrefix.DOC, CommitPrefix.FORMAT, CommitPrefix.RELEASE)


def has_prefix(message: str, prefix: CommitPrefix) -> bool:
    """Check whether a commit message starts with a gate prefix.

    Args:
        message: Commit message, possibly empty.
        prefix: The prefix to look for.

    Returns:
        bool: True only for an exact, case-sensitive match at position 0.
    """
    if not isinstance(message, str):
        return False
    return message.startswith(prefix.value)


def deploy_gate(event: TriggerEvent) -> bool:
    """Deploy runs for pushes that are not version-update merges."""
    return event.event_type == EventType.PUSH and not has_prefix(
        event.commit_message, CommitPrefix.RELEASE
    )


def release_gate(event: TriggerEvent) -> bool:
    """Release runs when deploy runs and the change is not docs or formatting."""
    if not deploy_gate(event):
        return False
    return not any(
        has_prefix(event.commit_message, prefix) for prefix in NO_RELEASE_PREFIXES
    )


def bump_kind_for(commit_message: str) -> BumpKind:
    """Minor for ``feat:`` commits, patch for everything else."""
    if has_prefix(commit_message, CommitPrefix.FEAT):
        return BumpKind.MINOR
    return BumpKind.PATCH


class TriggerEvaluator:
    """Turns a trigger event into gate decisions.

    Stateless: evaluating the same event always yields the same decision.
    The bump kind is computed even when release is skipped; it is only
    consumed when the release stage runs.

    Example:
        >>> event = TriggerEvent(
        ...     event_type=EventType.PUSH,
        ...     branch="main",
        ...     commit_message="feat: add cache",
        ...     commit_sha="sha123",
        ... )
        >>> TriggerEvaluator().evaluate(event)
        GateDecision(run_deploy=True, run_release=True, bump_kind=<BumpKind.MINOR: 'minor'>)
    """

    def evaluate(self, event: TriggerEvent) -> GateDecision:
        return GateDecision(
            run_deploy=deploy_gate(event),
            run_release=release_gate(event),
            bump_kind=bump_kind_for(event.commit_message),
        )
