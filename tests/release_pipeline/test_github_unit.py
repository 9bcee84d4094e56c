"""Unit tests for the GitHub client and the GitHub repository port.

Requests are served by an httpx.MockTransport backed by a small fake of
the GitHub REST API, so no network access is needed.
"""

import asyncio
import base64
import json
from typing import Dict, List

import httpx
import pytest

from src.release_pipeline.errors import (
    BranchAlreadyExistsError,
    TagAlreadyExistsError,
)
from src.release_pipeline.github.client import (
    GitHubAPIError,
    GitHubClient,
    RateLimitError,
)
from src.release_pipeline.release.automator import BranchPRAutomator
from src.release_pipeline.release.models import PullRequestRequest, Release, Tag
from src.release_pipeline.release.publisher import TagReleasePublisher
from src.release_pipeline.release.workflow import ReleaseWorkflow
from src.release_pipeline.storage.github import GitHubRepository, split_repository
from src.release_pipeline.trigger.models import EventType, TriggerEvent
from src.release_pipeline.version.ledger import VersionLedger


SHA = "6113728f27ae82c7b1a177c8d03f9e96e0adf246"


def run_async(coro):
    return asyncio.run(coro)


class FakeGitHub:
    """In-memory stand-in for the GitHub endpoints the pipeline calls."""

    def __init__(self, version_text: str = "1.4.2\n"):
        self.refs: Dict[str, str] = {"refs/heads/main": SHA}
        self.files: Dict[str, str] = {"main": version_text}
        self.requests: List[httpx.Request] = []
        self.fail_releases = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        body = json.loads(request.content) if request.content else {}

        if path == "/repos/acme/zana/contents/VERSION":
            ref = request.url.params.get("ref") or body.get("branch") or "main"
            if request.method == "GET":
                content = base64.b64encode(self.files[ref].encode()).decode()
                return httpx.Response(
                    200, json={"path": "VERSION", "sha": f"blob-{ref}", "content": content}
                )
            self.files[ref] = base64.b64decode(body["content"]).decode()
            return httpx.Response(200, json={"commit": {"sha": f"commit-{ref}"}})

        if path == "/repos/acme/zana/git/tags":
            return httpx.Response(201, json={"sha": f"tagobj-{body['tag']}"})

        if path == "/repos/acme/zana/git/refs":
            if body["ref"] in self.refs:
                return httpx.Response(
                    422, json={"message": "Reference already exists"}
                )
            self.refs[body["ref"]] = body["sha"]
            if body["ref"].startswith("refs/heads/"):
                branch = body["ref"][len("refs/heads/"):]
                self.files[branch] = self.files.get(body["sha"], self.files["main"])
            return httpx.Response(201, json={"ref": body["ref"]})

        if path == "/repos/acme/zana/releases":
            if self.fail_releases:
                return httpx.Response(500, json={"message": "Server Error"})
            return httpx.Response(
                201,
                json={
                    "id": 7,
                    "tag_name": body["tag_name"],
                    "html_url": f"https://github.com/acme/zana/releases/tag/{body['tag_name']}",
                },
            )

        if path == "/repos/acme/zana/pulls":
            return httpx.Response(
                201,
                json={"number": 12, "html_url": "https://github.com/acme/zana/pull/12"},
            )

        if path == "/rate_limit":
            return httpx.Response(200, json={})

        return httpx.Response(404, json={"message": "Not Found"})


@pytest.fixture
def fake():
    return FakeGitHub()


def _client(handler, **kwargs) -> GitHubClient:
    return GitHubClient(
        token="ghp_test",
        transport=httpx.MockTransport(handler),
        base_delay=0.0,
        **kwargs,
    )


def _repository(fake: FakeGitHub) -> GitHubRepository:
    return GitHubRepository(_client(fake.handler), "acme/zana")


class TestGitHubClient:
    def test_sends_auth_headers(self, fake):
        client = _client(fake.handler)

        run_async(client.get_file("acme", "zana", "VERSION", ref="main"))

        headers = fake.requests[0].headers
        assert headers["Authorization"] == "Bearer ghp_test"
        assert headers["X-GitHub-Api-Version"] == "2022-11-28"

    def test_get_file_decodes_content(self, fake):
        contents = run_async(_client(fake.handler).get_file("acme", "zana", "VERSION"))

        assert contents.content == "1.4.2\n"
        assert contents.sha == "blob-main"

    def test_retries_transient_read_errors(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json={})

        client = _client(handler, max_retries=3)

        response = run_async(client._request("GET", "/rate_limit"))

        assert response.status_code == 200
        assert len(attempts) == 3

    def test_health_check(self, fake):
        assert run_async(_client(fake.handler).health_check()) is True

    def test_does_not_retry_writes(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(502, text="Bad Gateway")

        client = _client(handler, max_retries=3)

        with pytest.raises(GitHubAPIError) as exc_info:
            run_async(client.create_ref("acme", "zana", "refs/heads/x", SHA))

        assert exc_info.value.status_code == 502
        assert len(attempts) == 1

    def test_rate_limit(self):
        def handler(request):
            return httpx.Response(
                403,
                headers={"x-ratelimit-remaining": "0", "retry-after": "30"},
                json={"message": "API rate limit exceeded"},
            )

        with pytest.raises(RateLimitError) as exc_info:
            run_async(_client(handler).get_file("acme", "zana", "VERSION"))

        assert exc_info.value.retry_after == 30

    def test_request_errors_exhaust_retries(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        with pytest.raises(GitHubAPIError, match="after 2 retries"):
            run_async(_client(handler, max_retries=2).get_file("acme", "zana", "VERSION"))

    def test_already_exists_detection(self):
        error = GitHubAPIError(
            "GitHub API error: 422",
            status_code=422,
            response_body='{"message": "Reference already exists"}',
        )

        assert error.is_already_exists
        assert not GitHubAPIError("x", status_code=404).is_already_exists


class TestGitHubRepository:
    def test_split_repository(self):
        assert split_repository("acme/zana") == ("acme", "zana")
        with pytest.raises(ValueError):
            split_repository("acme")
        with pytest.raises(ValueError):
            split_repository("acme/zana/extra")

    def test_read_version(self, fake):
        assert run_async(_repository(fake).read_version()) == "1.4.2\n"

    def test_create_tag_creates_object_and_ref(self, fake, identity):
        tag = Tag(name="v1.4.2", commit_sha=SHA, message="Release v1.4.2")

        run_async(_repository(fake).create_tag(tag, identity))

        tag_request = json.loads(fake.requests[0].content)
        assert tag_request["object"] == SHA
        assert tag_request["tagger"] == {
            "name": identity.name,
            "email": identity.email,
        }
        assert fake.refs["refs/tags/v1.4.2"] == "tagobj-v1.4.2"

    def test_existing_tag(self, fake, identity):
        fake.refs["refs/tags/v1.4.2"] = "old"

        with pytest.raises(TagAlreadyExistsError):
            run_async(
                _repository(fake).create_tag(Tag(name="v1.4.2", commit_sha=SHA), identity)
            )

        assert fake.refs["refs/tags/v1.4.2"] == "old"

    def test_existing_branch(self, fake):
        fake.refs["refs/heads/version-update-1.5.0"] = SHA

        with pytest.raises(BranchAlreadyExistsError):
            run_async(_repository(fake).create_branch("version-update-1.5.0", SHA))

    def test_write_version_on_branch(self, fake, identity):
        repository = _repository(fake)
        run_async(repository.create_branch("version-update-1.5.0", SHA))
        fake.files["version-update-1.5.0"] = fake.files["main"]

        commit_sha = run_async(
            repository.write_version(
                "version-update-1.5.0", "1.5.0\n", "release: version update", identity
            )
        )

        assert commit_sha == "commit-version-update-1.5.0"
        assert fake.files["version-update-1.5.0"] == "1.5.0\n"
        assert fake.files["main"] == "1.4.2\n"
        put_body = json.loads(fake.requests[-1].content)
        assert put_body["sha"] == "blob-version-update-1.5.0"
        assert put_body["message"] == "release: version update"

    def test_create_release_sets_url(self, fake):
        release = run_async(
            _repository(fake).create_release(Release(tag_name="v1.4.2", notes="n"))
        )

        assert release.url == "https://github.com/acme/zana/releases/tag/v1.4.2"

    def test_release_failure_propagates(self, fake):
        fake.fail_releases = True

        with pytest.raises(GitHubAPIError):
            run_async(_repository(fake).create_release(Release(tag_name="v1.4.2")))

    def test_open_pull_request(self, fake):
        result = run_async(
            _repository(fake).open_pull_request(
                PullRequestRequest(
                    head_branch="version-update-1.5.0",
                    base_branch="main",
                    title="Version update",
                    body="Version update after release",
                )
            )
        )

        assert result.number == 12
        body = json.loads(fake.requests[-1].content)
        assert body["head"] == "version-update-1.5.0"
        assert body["base"] == "main"


class TestReleaseAgainstGitHub:
    def test_version_is_read_at_the_released_commit(self, fake, identity):
        # Mainline moved on (a version update merged) after the event commit
        fake.files["main"] = "1.5.0\n"
        fake.files[SHA] = "1.4.2\n"
        repository = _repository(fake)
        workflow = ReleaseWorkflow(
            ledger=VersionLedger(repository),
            publisher=TagReleasePublisher(repository, tagger=identity),
            automator=BranchPRAutomator(repository, "main", author=identity),
        )
        event = TriggerEvent(
            event_type=EventType.PUSH,
            branch="main",
            commit_message="feat: x",
            commit_sha=SHA,
        )

        outcome = run_async(workflow(event))

        assert outcome.release.tag_name == "v1.4.2"
        assert str(outcome.next_version) == "1.5.0"
        assert fake.requests[0].url.params["ref"] == SHA
        assert fake.refs["refs/tags/v1.4.2"] == "tagobj-v1.4.2"
        assert fake.files["version-update-1.5.0"] == "1.5.0\n"
