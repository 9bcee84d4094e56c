"""Repository storage port and its implementations.

- RepositoryPort: Protocol over version file, tags, branches and PRs
- GitHubRepository: GitHub REST implementation
- InMemoryRepository: In-memory implementation for dry runs and tests
"""
