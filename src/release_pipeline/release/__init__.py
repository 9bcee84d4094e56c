"""Release publication and version-update automation.

This module handles the work of the release stage:
- Tag and release creation at the current version
- Version-update branch, commit and pull request
- The release workflow tying both to the version ledger
"""
