"""GitHub event payload parsing for the release pipeline.

This module provides the EventPayloadParser class for turning raw GitHub
``push`` and ``pull_request`` payloads into TriggerEvent objects. The same
payloads reach the pipeline either through the webhook endpoint or through
the event file a CI runner writes to ``GITHUB_EVENT_PATH``.

Only events targeting the mainline branch start a run; everything else is
ignored.

GitHub Payload Structure (push event, abridged):
{
  "ref": "refs/heads/main",
  "after": "6113728f27ae82c7b1a177c8d03f9e96e0adf246",
  "head_commit": {
    "id": "6113728f27ae82c7b1a177c8d03f9e96e0adf246",
    "message": "feat: add cache"
  }
}

GitHub Payload Structure (pull_request event, abridged):
{
  "action": "opened",
  "pull_request": {
    "head": {"ref": "feature-x", "sha": "ec26c3e57ca3a959ca5aad62de7213c562f8c821"},
    "base": {"ref": "main"}
  }
}
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .models import EventType, TriggerEvent

logger = logging.getLogger(__name__)

BRANCH_REF_PREFIX = "refs/heads/"


class EventPayloadParser:
    """Parser for GitHub push and pull_request payloads.

    Attributes:
        mainline_branch: The only branch whose events start a run.
    """

    def __init__(self, mainline_branch: str = "main") -> None:
        self.mainline_branch = mainline_branch

    def parse(
        self, event_name: str, payload: Dict[str, Any]
    ) -> Optional[TriggerEvent]:
        """Parse a GitHub payload into a trigger event.

        Args:
            event_name: The GitHub event name (``X-GitHub-Event`` header or
                        ``GITHUB_EVENT_NAME``).
            payload: The raw event payload as a dictionary.

        Returns:
            TriggerEvent if the payload is a supported event on the mainline
            branch, None otherwise. Returns None for:
            - Unsupported event names
            - Events on other branches or on tags
            - Malformed payload structure
        """
        if not isinstance(payload, dict):
            logger.warning("Invalid payload: expected dict, got %s", type(payload))
            return None

        try:
            event_type = EventType(event_name)
        except ValueError:
            logger.debug("Ignoring unsupported event type: %s", event_name)
            return None

        if event_type == EventType.PUSH:
            event = self._parse_push(payload)
        else:
            event = self._parse_pull_request(payload)

        if event is None:
            return None

        if event.branch != self.mainline_branch:
            logger.debug(
                "Ignoring event on non-mainline branch: %s",
                event.branch,
            )
            return None

        logger.info(
            "Parsed trigger event: type=%s, branch=%s, sha=%s",
            event.event_type.value,
            event.branch,
            event.short_sha,
        )
        return event

    def load(
        self, event_name: str, event_path: Union[str, Path]
    ) -> Optional[TriggerEvent]:
        """Parse a payload from an event file written by a CI runner.

        Raises:
            FileNotFoundError: If the event file does not exist.
            json.JSONDecodeError: If the file is not valid JSON.
        """
        with open(event_path, "r", encoding="utf-8") as f:
            payload = json.load(f)
        return self.parse(event_name, payload)

    def _parse_push(self, payload: Dict[str, Any]) -> Optional[TriggerEvent]:
        """Extract branch, head commit message and SHA from a push payload."""
        ref = payload.get("ref")
        if not isinstance(ref, str) or not ref.startswith(BRANCH_REF_PREFIX):
            logger.debug("Ignoring push to non-branch ref: %s", ref)
            return None
        branch = ref[len(BRANCH_REF_PREFIX):]

        if payload.get("deleted") is True:
            logger.debug("Ignoring branch deletion: %s", branch)
            return None

        head_commit = payload.get("head_commit")
        if head_commit is not None and not isinstance(head_commit, dict):
            logger.warning("Invalid 'head_commit' field: %s", type(head_commit))
            return None
        head_commit = head_commit or {}

        message = head_commit.get("message")
        if not isinstance(message, str):
            message = ""

        sha = head_commit.get("id") or payload.get("after")
        if not isinstance(sha, str) or not sha.strip():
            logger.warning("Push payload has no head commit SHA")
            return None

        return TriggerEvent(
            event_type=EventType.PUSH,
            branch=branch,
            commit_message=message,
            commit_sha=sha.strip(),
        )

    def _parse_pull_request(
        self, payload: Dict[str, Any]
    ) -> Optional[TriggerEvent]:
        """Extract base branch and head SHA from a pull_request payload.

        GitHub provides no head commit message for pull request events, so
        the message is empty and every prefix check fails.
        """
        pull_request = payload.get("pull_request")
        if not isinstance(pull_request, dict):
            logger.warning(
                "Missing or invalid 'pull_request' field in payload: %s",
                type(pull_request),
            )
            return None

        base = pull_request.get("base")
        head = pull_request.get("head")
        if not isinstance(base, dict) or not isinstance(head, dict):
            logger.warning("Pull request payload is missing base or head")
            return None

        branch = base.get("ref")
        sha = head.get("sha")
        if not isinstance(branch, str) or not branch.strip():
            logger.warning("Invalid or empty base ref: %s", branch)
            return None
        if not isinstance(sha, str) or not sha.strip():
            logger.warning("Invalid or empty head SHA: %s", sha)
            return None

        return TriggerEvent(
            event_type=EventType.PULL_REQUEST,
            branch=branch.strip(),
            commit_message="",
            commit_sha=sha.strip(),
        )
