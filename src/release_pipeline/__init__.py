"""Release pipeline orchestrator for push events on the mainline branch.

This package sequences the build, deploy and release stages of a
multi-component service, providing:
- Commit-message and event-type gating of the deploy and release stages
- Fail-fast stage execution over delegated toolchain commands
- Semantic version advancement from the repository VERSION file
- Tag and release publication at the pre-bump version
- Version-update branch and pull request creation for review
"""
