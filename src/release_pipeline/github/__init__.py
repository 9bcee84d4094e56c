"""GitHub API client for release publication.

This module provides a wrapper around the GitHub API for:
- Reading and committing the version file
- Creating annotated tags, tag refs and branch refs
- Creating releases
- Creating pull requests

Includes rate limiting and retry logic for API resilience.
"""

from src.release_pipeline.github.client import (
    GitHubAPIError,
    GitHubClient,
    RateLimitError,
)
from src.release_pipeline.github.models import (
    FileContents,
    GitObjectResult,
    PRCreateResult,
    ReleaseCreateResult,
)

__all__ = [
    "FileContents",
    "GitHubAPIError",
    "GitHubClient",
    "GitObjectResult",
    "PRCreateResult",
    "RateLimitError",
    "ReleaseCreateResult",
]
