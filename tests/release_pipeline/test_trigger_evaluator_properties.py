"""Property-based tests for stage gates.

Verifies the gate rules across arbitrary commit messages:
- release implies deploy
- pull request events never deploy or release
- release: commits neither deploy nor release
- the bump kind is minor exactly for feat: commits

Testing Configuration:
- Library: Hypothesis (Python)
- Minimum iterations: 100 per property test
"""

from hypothesis import given, settings, strategies as st

from src.release_pipeline.trigger.evaluator import TriggerEvaluator
from src.release_pipeline.trigger.models import EventType, TriggerEvent
from src.release_pipeline.version.models import BumpKind


prefixes = st.sampled_from(
    ["feat:", "doc:", "format:", "release:", "fix:", "Feat:", " feat:", ""]
)

messages = st.builds(
    lambda prefix, rest: prefix + rest,
    prefixes,
    st.text(max_size=80),
)

event_types = st.sampled_from(list(EventType))


def _make_event(event_type: EventType, message: str) -> TriggerEvent:
    return TriggerEvent(
        event_type=event_type,
        branch="main",
        commit_message=message,
        commit_sha="ec26c3e57ca3a959ca5aad62de7213c562f8c821",
    )


class TestGateProperties:
    @given(event_type=event_types, message=messages)
    @settings(max_examples=200)
    def test_release_implies_deploy(self, event_type, message):
        decision = TriggerEvaluator().evaluate(_make_event(event_type, message))

        assert not decision.run_release or decision.run_deploy

    @given(message=messages)
    @settings(max_examples=100)
    def test_pull_request_is_build_only(self, message):
        decision = TriggerEvaluator().evaluate(
            _make_event(EventType.PULL_REQUEST, message)
        )

        assert decision.run_deploy is False
        assert decision.run_release is False

    @given(event_type=event_types, rest=st.text(max_size=80))
    @settings(max_examples=100)
    def test_release_commits_skip_deploy_and_release(self, event_type, rest):
        decision = TriggerEvaluator().evaluate(
            _make_event(event_type, "release:" + rest)
        )

        assert decision.run_deploy is False
        assert decision.run_release is False

    @given(event_type=event_types, message=messages)
    @settings(max_examples=200)
    def test_bump_kind_is_minor_only_for_feat(self, event_type, message):
        decision = TriggerEvaluator().evaluate(_make_event(event_type, message))

        expected = BumpKind.MINOR if message.startswith("feat:") else BumpKind.PATCH
        assert decision.bump_kind == expected

    @given(event_type=event_types, message=messages)
    @settings(max_examples=100)
    def test_evaluation_is_deterministic(self, event_type, message):
        event = _make_event(event_type, message)
        evaluator = TriggerEvaluator()

        assert evaluator.evaluate(event) == evaluator.evaluate(event)
