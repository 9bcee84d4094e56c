"""GitHub API client for release publication.

This module provides an async wrapper around the GitHub REST API for:
- Reading and updating the version file through the contents API
- Creating annotated tag objects and git refs (tags and branches)
- Creating releases
- Creating pull requests

Includes rate limit detection and retry logic for read requests. Write
requests are sent once: a retried create whose first attempt landed would
surface as a spurious "already exists" error.

Source:
- src/release_pipeline/github/models.py (response models)
- src/release_pipeline/config.py (github_token, github_base_url)
"""

import asyncio
import base64
import logging
import random
import time
from typing import Any, Dict, Optional

import httpx

from src.release_pipeline.github.models import (
    FileContents,
    GitObjectResult,
    PRCreateResult,
    ReleaseCreateResult,
)


logger = logging.getLogger(__name__)


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response.
        response_body: Response body from GitHub API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)

    @property
    def is_already_exists(self) -> bool:
        """True for the 422 GitHub returns when a ref name is taken."""
        return (
            self.status_code == 422
            and "already exists" in (self.response_body or "").lower()
        )


class RateLimitError(GitHubAPIError):
    """Raised when GitHub API rate limit is exceeded.

    Attributes:
        reset_at: Unix timestamp when the rate limit resets.
        retry_after: Seconds to wait before retrying.
    """

    def __init__(
        self,
        message: str,
        reset_at: Optional[int] = None,
        retry_after: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at
        self.retry_after = retry_after


class GitHubClient:
    """Async GitHub API client with rate limiting and retry logic.

    - Automatic retry with exponential backoff for transient read failures
    - Rate limit handling by respecting X-RateLimit-* headers
    - Support for both github.com and GitHub Enterprise Server

    Attributes:
        token: GitHub API token (PAT, Actions token or App token).
        base_url: Base URL for GitHub API (default: https://api.github.com).
        max_retries: Maximum number of retry attempts for transient failures.
        base_delay: Base delay in seconds for exponential backoff.
        max_delay: Maximum delay in seconds between retries.
        timeout: Request timeout in seconds.

    Example:
        >>> async with GitHubClient(token="ghp_xxx") as client:
        ...     await client.create_ref("owner", "repo", "refs/heads/x", sha)
    """

    # HTTP status codes that should trigger a retry
    RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

    # Only requests without side effects are retried
    RETRYABLE_METHODS = {"GET", "HEAD"}

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub API token for authentication.
            base_url: Base URL for GitHub API. Use this to support
                      GitHub Enterprise Server endpoints.
            max_retries: Maximum number of retry attempts.
            base_delay: Base delay in seconds for exponential backoff.
            max_delay: Maximum delay in seconds between retries.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, e.g. a MockTransport.
        """
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "release-pipeline/1.0",
        }

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(
        self,
        exc_type: Any,
        exc_val: Any,
        exc_tb: Any,
    ) -> None:
        await self.close()

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate backoff delay with full jitter.

        Args:
            attempt: The current retry attempt (0-indexed).

        Returns:
            Delay in seconds before the next retry.
        """
        exponential_delay = self.base_delay * (2 ** attempt)
        capped_delay = min(exponential_delay, self.max_delay)
        return random.uniform(0, capped_delay)

    def _parse_int_header(
        self,
        headers: httpx.Headers,
        name: str,
    ) -> Optional[int]:
        value = headers.get(name)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                pass
        return None

    def _handle_rate_limit(self, response: httpx.Response) -> None:
        """Raise a RateLimitError describing when to retry.

        Raises:
            RateLimitError: Always.
        """
        reset_at = self._parse_int_header(response.headers, "x-ratelimit-reset")

        retry_after = None
        if reset_at is not None:
            retry_after = max(0, reset_at - int(time.time()))

        # Retry-After takes precedence over the reset timestamp
        retry_after_header = self._parse_int_header(response.headers, "retry-after")
        if retry_after_header is not None:
            retry_after = retry_after_header

        logger.warning(
            "GitHub API rate limit exceeded",
            extra={
                "reset_at": reset_at,
                "retry_after": retry_after,
                "limit": self._parse_int_header(response.headers, "x-ratelimit-limit"),
                "used": self._parse_int_header(response.headers, "x-ratelimit-used"),
            },
        )

        raise RateLimitError(
            message="GitHub API rate limit exceeded",
            status_code=response.status_code,
            reset_at=reset_at,
            retry_after=retry_after,
        )

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """Make an HTTP request, retrying transient failures of reads.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH).
            path: API path (e.g., /repos/owner/repo/git/refs).
            json_data: Optional JSON body for the request.
            params: Optional query parameters.

        Returns:
            The HTTP response from GitHub.

        Raises:
            GitHubAPIError: If the request fails after all retries.
            RateLimitError: If rate limit is exceeded.
        """
        retries = self.max_retries if method in self.RETRYABLE_METHODS else 0
        last_exception: Optional[Exception] = None

        for attempt in range(retries + 1):
            try:
                response = await self.client.request(
                    method=method,
                    url=path,
                    json=json_data,
                    params=params,
                )
            except httpx.RequestError as e:
                last_exception = e
                if attempt < retries:
                    delay = self._calculate_backoff(attempt)
                    logger.warning(
                        "Request error, retrying",
                        extra={
                            "error": str(e),
                            "attempt": attempt + 1,
                            "max_retries": retries,
                            "delay": delay,
                            "path": path,
                        },
                    )
                    await asyncio.sleep(delay)
                continue

            if response.status_code == 403:
                remaining = self._parse_int_header(
                    response.headers,
                    "x-ratelimit-remaining",
                )
                if remaining == 0:
                    self._handle_rate_limit(response)

            if response.status_code == 429:
                self._handle_rate_limit(response)

            if response.status_code in self.RETRYABLE_STATUS_CODES and attempt < retries:
                delay = self._calculate_backoff(attempt)
                logger.warning(
                    "Retryable error from GitHub API",
                    extra={
                        "status_code": response.status_code,
                        "attempt": attempt + 1,
                        "max_retries": retries,
                        "delay": delay,
                        "path": path,
                    },
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code >= 400:
                error_body = response.text
                logger.error(
                    "GitHub API error",
                    extra={
                        "status_code": response.status_code,
                        "path": path,
                        "method": method,
                        "response_body": error_body[:500],
                    },
                )
                raise GitHubAPIError(
                    message=f"GitHub API error: {response.status_code}",
                    status_code=response.status_code,
                    response_body=error_body,
                    request_url=str(response.url),
                )

            return response

        logger.error(
            "GitHub API request failed after all retries",
            extra={
                "path": path,
                "method": method,
                "max_retries": retries,
                "last_error": str(last_exception),
            },
        )
        raise GitHubAPIError(
            message=f"Request failed after {retries} retries: {last_exception}",
            request_url=f"{self.base_url}{path}",
        )

    async def get_file(
        self,
        owner: str,
        repo: str,
        path: str,
        ref: Optional[str] = None,
    ) -> FileContents:
        """Read a file through the contents API.

        Args:
            owner: Repository owner (user or organization).
            repo: Repository name.
            path: File path within the repository.
            ref: Branch, tag or commit to read. Defaults to the repository's
                 default branch.

        Returns:
            FileContents with the decoded text and blob SHA.

        Raises:
            GitHubAPIError: If the request fails.
        """
        params = {"ref": ref} if ref else None

        logger.debug(
            "Reading file",
            extra={"owner": owner, "repo": repo, "path": path, "ref": ref},
        )

        response = await self._request(
            method="GET",
            path=f"/repos/{owner}/{repo}/contents/{path}",
            params=params,
        )
        data = response.json()
        content = base64.b64decode(data.get("content", "")).decode("utf-8")

        return FileContents(path=data.get("path", path), sha=data["sha"], content=content)

    async def put_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str,
        message: str,
        branch: str,
        sha: str,
        author: Dict[str, str],
    ) -> GitObjectResult:
        """Commit new contents of an existing file to a branch.

        Args:
            owner: Repository owner.
            repo: Repository name.
            path: File path within the repository.
            content: New file text.
            message: Commit message.
            branch: Branch receiving the commit.
            sha: Blob SHA of the file being replaced.
            author: ``{"name": ..., "email": ...}`` used as author and
                    committer.

        Returns:
            GitObjectResult with the SHA of the created commit.

        Raises:
            GitHubAPIError: If the request fails.
        """
        logger.info(
            "Committing file update",
            extra={"owner": owner, "repo": repo, "path": path, "branch": branch},
        )

        response = await self._request(
            method="PUT",
            path=f"/repos/{owner}/{repo}/contents/{path}",
            json_data={
                "message": message,
                "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
                "sha": sha,
                "branch": branch,
                "author": author,
                "committer": author,
            },
        )
        result = GitObjectResult.from_github_response(response.json()["commit"])

        logger.info(
            "File update committed",
            extra={"owner": owner, "repo": repo, "branch": branch, "commit_sha": result.sha},
        )
        return result

    async def create_tag_object(
        self,
        owner: str,
        repo: str,
        tag: str,
        message: str,
        object_sha: str,
        tagger: Dict[str, str],
    ) -> GitObjectResult:
        """Create an annotated tag object pointing at a commit.

        The tag object is not visible as a tag until a ``refs/tags/<tag>``
        ref points at it (see create_ref).

        Raises:
            GitHubAPIError: If the request fails.
        """
        logger.info(
            "Creating tag object",
            extra={"owner": owner, "repo": repo, "tag": tag, "object_sha": object_sha},
        )

        response = await self._request(
            method="POST",
            path=f"/repos/{owner}/{repo}/git/tags",
            json_data={
                "tag": tag,
                "message": message,
                "object": object_sha,
                "type": "commit",
                "tagger": tagger,
            },
        )
        return GitObjectResult.from_github_response(response.json())

    async def create_ref(
        self,
        owner: str,
        repo: str,
        ref: str,
        sha: str,
    ) -> Dict[str, Any]:
        """Create a git reference.

        Args:
            owner: Repository owner.
            repo: Repository name.
            ref: Fully qualified ref, e.g. ``refs/tags/v1.2.3`` or
                 ``refs/heads/version-update-1.2.4``.
            sha: Object the ref points at.

        Returns:
            The created ref data from GitHub API.

        Raises:
            GitHubAPIError: If the request fails. A taken ref name yields
                            a 422 with ``is_already_exists`` set.
        """
        logger.info(
            "Creating ref",
            extra={"owner": owner, "repo": repo, "ref": ref, "sha": sha},
        )

        response = await self._request(
            method="POST",
            path=f"/repos/{owner}/{repo}/git/refs",
            json_data={"ref": ref, "sha": sha},
        )
        return response.json()

    async def create_release(
        self,
        owner: str,
        repo: str,
        tag_name: str,
        body: str,
        name: Optional[str] = None,
    ) -> ReleaseCreateResult:
        """Create a release for an existing tag.

        Raises:
            GitHubAPIError: If the request fails.
        """
        logger.info(
            "Creating release",
            extra={"owner": owner, "repo": repo, "tag_name": tag_name},
        )

        response = await self._request(
            method="POST",
            path=f"/repos/{owner}/{repo}/releases",
            json_data={
                "tag_name": tag_name,
                "name": name or tag_name,
                "body": body,
                "draft": False,
                "prerelease": False,
            },
        )
        result = ReleaseCreateResult.from_github_response(response.json())

        logger.info(
            "Release created successfully",
            extra={"owner": owner, "repo": repo, "release_url": result.html_url},
        )
        return result

    async def create_pr(
        self,
        owner: str,
        repo: str,
        title: str,
        body: str,
        head_branch: str,
        base_branch: str,
    ) -> PRCreateResult:
        """Create a pull request.

        Raises:
            GitHubAPIError: If the request fails.
        """
        logger.info(
            "Creating pull request",
            extra={
                "owner": owner,
                "repo": repo,
                "title": title,
                "head": head_branch,
                "base": base_branch,
            },
        )

        response = await self._request(
            method="POST",
            path=f"/repos/{owner}/{repo}/pulls",
            json_data={
                "title": title,
                "body": body,
                "head": head_branch,
                "base": base_branch,
            },
        )

        result = PRCreateResult.from_github_response(response.json())

        logger.info(
            "Pull request created successfully",
            extra={
                "owner": owner,
                "repo": repo,
                "pr_number": result.pr_number,
                "pr_url": result.pr_url,
            },
        )
        return result

    async def health_check(self) -> bool:
        """Check if the GitHub API is accessible.

        Returns:
            True if healthy, False otherwise.
        """
        try:
            response = await self.client.get("/rate_limit")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(
                "GitHub API health check failed",
                extra={"error": str(e)},
            )
            return False
