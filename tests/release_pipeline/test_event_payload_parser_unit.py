"""Unit tests for GitHub event payload parsing."""

import json

import pytest

from src.release_pipeline.trigger.handler import EventPayloadParser
from src.release_pipeline.trigger.models import EventType


SHA = "6113728f27ae82c7b1a177c8d03f9e96e0adf246"
PR_HEAD_SHA = "ec26c3e57ca3a959ca5aad62de7213c562f8c821"


def _push_payload(ref="refs/heads/main", message="feat: add cache", sha=SHA, **extra):
    payload = {
        "ref": ref,
        "after": sha,
        "head_commit": {"id": sha, "message": message},
    }
    payload.update(extra)
    return payload


def _pull_request_payload(base="main", head_sha=PR_HEAD_SHA):
    return {
        "action": "opened",
        "pull_request": {
            "head": {"ref": "feature-x", "sha": head_sha},
            "base": {"ref": base},
        },
    }


@pytest.fixture
def parser():
    return EventPayloadParser(mainline_branch="main")


class TestPushEvents:
    def test_parses_mainline_push(self, parser):
        event = parser.parse("push", _push_payload())

        assert event is not None
        assert event.event_type == EventType.PUSH
        assert event.branch == "main"
        assert event.commit_message == "feat: add cache"
        assert event.commit_sha == SHA

    def test_ignores_other_branches(self, parser):
        assert parser.parse("push", _push_payload(ref="refs/heads/feature-x")) is None

    def test_ignores_tag_pushes(self, parser):
        assert parser.parse("push", _push_payload(ref="refs/tags/v1.0.0")) is None

    def test_ignores_branch_deletion(self, parser):
        payload = _push_payload(deleted=True)
        payload["head_commit"] = None

        assert parser.parse("push", payload) is None

    def test_falls_back_to_after_sha(self, parser):
        payload = _push_payload()
        payload["head_commit"] = None

        event = parser.parse("push", payload)

        assert event is not None
        assert event.commit_sha == SHA
        assert event.commit_message == ""

    def test_missing_sha_is_ignored(self, parser):
        payload = {"ref": "refs/heads/main", "head_commit": {"message": "fix: x"}}

        assert parser.parse("push", payload) is None

    def test_keeps_full_multiline_message(self, parser):
        message = "fix: handle empty isbn\n\nCloses #4"

        event = parser.parse("push", _push_payload(message=message))

        assert event.commit_message == message
        assert event.subject == "fix: handle empty isbn"


class TestPullRequestEvents:
    def test_parses_pull_request_into_mainline(self, parser):
        event = parser.parse("pull_request", _pull_request_payload())

        assert event is not None
        assert event.event_type == EventType.PULL_REQUEST
        assert event.branch == "main"
        assert event.commit_sha == PR_HEAD_SHA
        assert event.commit_message == ""

    def test_ignores_pull_request_into_other_base(self, parser):
        assert parser.parse("pull_request", _pull_request_payload(base="develop")) is None

    def test_missing_head_sha_is_ignored(self, parser):
        assert parser.parse("pull_request", _pull_request_payload(head_sha="")) is None

    def test_missing_pull_request_field_is_ignored(self, parser):
        assert parser.parse("pull_request", {"action": "opened"}) is None


class TestOtherInputs:
    @pytest.mark.parametrize("event_name", ["issues", "release", "workflow_dispatch", ""])
    def test_unsupported_event_names(self, parser, event_name):
        assert parser.parse(event_name, _push_payload()) is None

    def test_non_dict_payload(self, parser):
        assert parser.parse("push", ["not", "a", "dict"]) is None

    def test_custom_mainline_branch(self):
        parser = EventPayloadParser(mainline_branch="trunk")

        assert parser.parse("push", _push_payload()) is None
        assert parser.parse("push", _push_payload(ref="refs/heads/trunk")) is not None


class TestLoad:
    def test_loads_event_file(self, parser, tmp_path):
        event_path = tmp_path / "event.json"
        event_path.write_text(json.dumps(_push_payload(message="doc: readme")))

        event = parser.load("push", event_path)

        assert event is not None
        assert event.commit_message == "doc: readme"

    def test_missing_file_raises(self, parser, tmp_path):
        with pytest.raises(FileNotFoundError):
            parser.load("push", tmp_path / "missing.json")

    def test_invalid_json_raises(self, parser, tmp_path):
        event_path = tmp_path / "event.json"
        event_path.write_text("{not json")

        with pytest.raises(ValueError):
            parser.load("push", event_path)
